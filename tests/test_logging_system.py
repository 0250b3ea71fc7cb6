"""
Tests for the logging system.

Tests structured logging, correlation IDs and the output formatters.
"""

import json
import logging
import sys

from src.shared.logging_config import (
    ColoredFormatter,
    CorrelationContext,
    CorrelationFilter,
    GuardLogger,
    JSONFormatter,
    get_correlation_id,
    get_logger
)


def make_record(msg='Test message', **extra):
    record = logging.LogRecord(
        name='test.logger',
        level=logging.INFO,
        pathname='test.py',
        lineno=42,
        msg=msg,
        args=(),
        exc_info=None
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestLoggingConfig:
    """Test logging configuration."""

    def test_guard_logger_creation(self):
        logger = GuardLogger('test.logger', 'test_component')

        assert logger.component == 'test_component'
        assert logger.logger.name == 'test.logger'

    def test_component_defaults_to_module_name(self):
        assert get_logger('src.shared.security.csrf').component == 'csrf'

    def test_correlation_context(self):
        with CorrelationContext('test-correlation-123', '10.0.0.1'):
            assert get_correlation_id() == 'test-correlation-123'

        # Context should be cleared after exiting
        assert get_correlation_id() is None

    def test_correlation_context_generates_id(self):
        with CorrelationContext() as context:
            assert get_correlation_id() == context.correlation_id_value
            assert len(context.correlation_id_value) == 16

    def test_correlation_filter(self):
        record = make_record()

        with CorrelationContext('abc123', '10.0.0.1'):
            CorrelationFilter().filter(record)

        assert record.correlation_id == 'abc123'
        assert record.request_ip == '10.0.0.1'
        assert record.component == 'unknown'

    def test_json_formatter(self):
        formatter = JSONFormatter()
        record = make_record(
            correlation_id='test-correlation',
            request_ip='10.0.0.1',
            component='rate_limiter',
            operation='rate_limit_cleanup',
            limiter='chat',
            details={'removed': 2}
        )

        log_data = json.loads(formatter.format(record))

        assert log_data['level'] == 'INFO'
        assert log_data['message'] == 'Test message'
        assert log_data['correlation_id'] == 'test-correlation'
        assert log_data['request_ip'] == '10.0.0.1'
        assert log_data['component'] == 'rate_limiter'
        assert log_data['operation'] == 'rate_limit_cleanup'
        assert log_data['limiter'] == 'chat'
        assert log_data['details'] == {'removed': 2}
        assert 'msg' not in log_data

    def test_json_formatter_stringifies_unserializable_extras(self):
        record = make_record(payload=object())

        log_data = json.loads(JSONFormatter().format(record))

        assert log_data['payload'].startswith('<object object')

    def test_json_formatter_exception(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = make_record(exc_info=sys.exc_info())

        log_data = json.loads(JSONFormatter().format(record))

        assert log_data['exception']['type'] == 'ValueError'
        assert log_data['exception']['message'] == 'boom'

    def test_colored_formatter(self):
        formatter = ColoredFormatter('%(levelname)s - %(message)s')
        record = make_record(correlation_id='abcdef123456', request_ip='10.0.0.1')

        formatted = formatter.format(record)

        assert 'INFO - Test message' in formatted
        assert '[abcdef12 10.0.0.1]' in formatted

    def test_structured_fields_reach_handlers(self, caplog):
        logger = get_logger('tests.logging', 'test_component')

        with caplog.at_level(logging.INFO, logger='tests.logging'):
            logger.info("Something happened", operation="test_op", client_ip="10.0.0.1")

        record = caplog.records[-1]
        assert record.component == 'test_component'
        assert record.operation == 'test_op'
        assert record.client_ip == '10.0.0.1'
