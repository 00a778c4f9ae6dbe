#!/usr/bin/env python3
"""
Simple test runner for the miata_scraper package.
This uses Python's built-in unittest framework.
"""
import logging
import unittest
from unittest import mock


class TestModularStructure(unittest.TestCase):
    """Test the modular structure works correctly."""

    def test_imports(self):
        """Test that all modules can be imported successfully."""
        from miata_scraper import (  # noqa: F401
            classifier, evaluation, extraction, filters, models, navigation, progress, store, utils,
        )
        from miata_scraper import Listing, ProgressChannel, ListingStore, run_scrape, classify  # noqa: F401

        self.assertTrue(callable(run_scrape))

    def test_number_parsing(self):
        """Test integer parsing with thousands separators."""
        from miata_scraper.utils import parse_int

        self.assertEqual(parse_int("45,500"), 45500)
        self.assertEqual(parse_int("120000"), 120000)
        self.assertIsNone(parse_int(","))
        self.assertIsNone(parse_int(None))

    def test_text_cleaning(self):
        """Test text cleaning functionality."""
        from miata_scraper.utils import clean_text, truncate

        self.assertEqual(clean_text("  Hello   World  \n"), "Hello World")
        self.assertEqual(clean_text(None), "")
        self.assertEqual(truncate("abcdef", 3), "abc")
        self.assertEqual(truncate(None, 3), "")

    def test_listing_model(self):
        """Test Listing model creation."""
        from miata_scraper.models import Listing, Transmission

        listing = Listing(
            id="listing_1_0",
            title="1990 Mazda Miata",
            url="https://www.facebook.com/marketplace/item/123/",
            price=4200,
            year=1990,
        )
        self.assertEqual(listing.transmission, Transmission.UNKNOWN)
        self.assertEqual(listing.images, [])
        data = listing.to_dict()
        self.assertEqual(data["transmission"], "Unknown")
        self.assertIsNone(data["lowball_price"])

    def test_search_params_validation(self):
        """Test that bad search criteria are rejected up front."""
        from miata_scraper.exceptions import InvalidSearchParamsError
        from miata_scraper.models import SearchParams

        with self.assertRaises(InvalidSearchParamsError):
            SearchParams(year_min=2000, year_max=1995)
        with self.assertRaises(InvalidSearchParamsError):
            SearchParams(max_mileage=-1)
        with self.assertRaises(ValueError):
            SearchParams(limit=-5)

        params = SearchParams(year_min=1990, year_max=1997, max_price=6000)
        more = params.with_limit(10)
        self.assertEqual(more.limit, 10)
        self.assertEqual(more.max_price, 6000)
        self.assertEqual(params.limit, 20)

    def test_logger_initialization(self):
        """Test logger setup without a file handler."""
        from miata_scraper.utils import init_logger

        logger = init_logger(name="miata_scraper.test_unit", console_level="WARNING", log_file=None)
        self.assertEqual(len(logger.handlers), 1)
        self.assertEqual(logger.handlers[0].level, logging.WARNING)
        self.assertIs(init_logger(name="miata_scraper.test_unit"), logger)


class TestMainScraper(unittest.TestCase):
    """Test the command line module."""

    def test_main_module_import(self):
        """Test that the command line module can be imported."""
        from miata_scraper import marketplace_scraper

        self.assertTrue(hasattr(marketplace_scraper, 'main'))
        self.assertTrue(hasattr(marketplace_scraper, 'parse_args'))

    def test_parse_args(self):
        from miata_scraper.marketplace_scraper import parse_args

        args = parse_args(["--year-min", "1990", "--year-max", "1997", "--max-price", "7000", "--debug"])
        self.assertEqual(args.year_min, 1990)
        self.assertEqual(args.max_price, 7000)
        self.assertTrue(args.debug)
        self.assertEqual(args.limit, 20)

    def test_bad_params_exit_code(self):
        from miata_scraper.marketplace_scraper import main

        self.assertEqual(main(["--year-min", "2001", "--year-max", "1999", "--no-file-log"]), 2)

    def test_browser_failure_exit_code(self):
        from miata_scraper.exceptions import NavigationError
        from miata_scraper.marketplace_scraper import main

        async def failing_scrape(*args, **kwargs):
            raise NavigationError("Login navigation failed: net::ERR_NAME_NOT_RESOLVED")

        with mock.patch("miata_scraper.marketplace_scraper.run_scrape", failing_scrape):
            self.assertEqual(main(["--no-file-log"]), 1)


if __name__ == "__main__":
    # Run the tests
    unittest.main(verbosity=2)
