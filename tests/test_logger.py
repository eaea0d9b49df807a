from resume_mailer.logger import get_logger, redact_email


def test_get_logger_reuses_existing_logger():
    logger = get_logger("TestLogger")
    handler_count = len(logger.handlers)

    same_logger = get_logger("TestLogger")
    assert logger is same_logger
    assert len(same_logger.handlers) == handler_count


def test_default_logger_name():
    assert get_logger().name == "ResumeMailer"


def test_redact_email():
    assert redact_email("jane.doe@example.com") == "j***@example.com"
    assert redact_email("not-an-address") == "***"
    assert redact_email("jane.doe@example.com", production=False) == "jane.doe@example.com"
