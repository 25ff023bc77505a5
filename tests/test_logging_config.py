import logging
import unittest

from voice_gateway.config.logging_config import RedactionFilter, configure_logging


class ListHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.messages = []

    def emit(self, record):
        self.messages.append(self.format(record))


class TestLoggingConfig(unittest.TestCase):
    def test_configure_logging(self):
        # Test that the function returns a logger
        logger = configure_logging()
        self.assertIsInstance(logger, logging.Logger)

        # Test that the logger has the correct name
        self.assertEqual(logger.name, "voice_gateway")

        self.assertFalse(logger.propagate)

        # Test that the logger has the correct handlers and format
        self.assertGreaterEqual(len(logger.handlers), 1)  # At least one handler (console)
        handler = logger.handlers[0]  # Check first handler (should be console handler)
        self.assertIsInstance(handler, logging.StreamHandler)
        formatter = handler.formatter
        self.assertEqual(formatter._fmt, "%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    def test_every_handler_redacts(self):
        logger = configure_logging()
        for handler in logger.handlers:
            self.assertTrue(any(isinstance(f, RedactionFilter) for f in handler.filters))

    def test_configure_logging_level(self):
        logger = configure_logging("debug")
        self.assertEqual(logger.level, logging.DEBUG)
        logger = configure_logging("INFO")
        self.assertEqual(logger.level, logging.INFO)

    def test_redaction_filter_scrubs_messages(self):
        logger = logging.getLogger("voice_gateway.test_redaction")
        logger.propagate = False
        logger.setLevel(logging.INFO)
        handler = ListHandler()
        handler.addFilter(RedactionFilter())
        logger.addHandler(handler)
        try:
            logger.info("Caller %s booked, email %s", "+14155550123", "ann@example.com")
        finally:
            logger.removeHandler(handler)

        self.assertEqual(handler.messages, ["Caller [PHONE_REDACTED] booked, email [EMAIL_REDACTED]"])


if __name__ == "__main__":
    unittest.main()
