"""
HTTP adapter for the Miata Marketplace scraper.
"""
