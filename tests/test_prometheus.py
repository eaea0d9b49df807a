from resume_mailer.prometheus import ResumeMetrics


def test_resume_metrics_counters_and_gauge():
    metrics = ResumeMetrics()

    metrics.inc_sent("attachment")
    metrics.inc_error(None)
    metrics.inc_rate_limited()
    metrics.inc_rejected("TooLong")
    metrics.set_tracked_clients(3)

    output = metrics.generate_latest()
    assert b'rm_sent_total{strategy="attachment"} 1.0' in output
    assert b'rm_errors_total{code="unknown"} 1.0' in output
    assert b"rm_rate_limited_total 1.0" in output
    assert b'rm_rejected_total{reason="TooLong"} 1.0' in output
    assert b"rm_tracked_clients 3.0" in output


def test_instances_use_separate_registries():
    first = ResumeMetrics()
    second = ResumeMetrics()
    first.inc_sent("smtp")
    assert second.registry.get_sample_value("rm_sent_total", {"strategy": "smtp"}) is None
