from unittest import mock

import pytest

from soundsos.system.dispatcher import AlertDispatcher, format_alert_message
from soundsos.system.location import StaticLocationProvider, maps_link, resolve_location
from soundsos.system.transport import Failed, LogTransport, Sent, TwilioSmsTransport


def test_one_failure_does_not_stop_others(transport, contacts):
    transport.failing = {"+15550002": "unreachable"}
    report = AlertDispatcher(transport).dispatch(contacts)

    assert report.attempted == 3
    assert report.success_count == 2
    assert report.failure_count == 1
    assert report.failures == [("+15550002", "unreachable")]
    assert sorted(transport.recipients) == sorted(contacts)


def test_raising_transport_becomes_failed_outcome(contacts):
    class FlakyTransport:
        def __init__(self):
            self.calls = []

        def send(self, recipient, message):
            self.calls.append(recipient)
            if recipient == "+15550001":
                raise ConnectionError("socket closed")
            return Sent()

    flaky = FlakyTransport()
    report = AlertDispatcher(flaky).dispatch(contacts)

    assert len(flaky.calls) == 3
    assert report.success_count == 2
    assert report.outcomes["+15550001"] == Failed("socket closed")


def test_unexpected_transport_result_counts_as_failure():
    class OddTransport:
        def send(self, recipient, message):
            return "ok"

    report = AlertDispatcher(OddTransport()).dispatch({"+15550001"})
    assert report.success_count == 0
    assert report.failure_count == 1
    assert "unexpected" in report.failures[0][1]


def test_empty_recipients_sends_nothing(transport):
    report = AlertDispatcher(transport).dispatch(frozenset())
    assert report.attempted == 0
    assert report.success_count == 0
    assert report.failures == []
    assert transport.calls == []


def test_duplicate_recipients_sent_once(transport):
    report = AlertDispatcher(transport).dispatch(["+15550001", "+15550001"])
    assert report.attempted == 1
    assert transport.recipients == ["+15550001"]


def test_parallel_dispatch_keeps_recipient_order(transport, contacts):
    transport.failing = {"+15550003": "busy"}
    report = AlertDispatcher(transport, max_workers=4).dispatch(contacts)
    assert list(report.outcomes) == sorted(contacts)
    assert report.success_count == 2
    assert report.failures == [("+15550003", "busy")]


def test_message_mentions_location(transport):
    link = maps_link(52.52, 13.405)
    AlertDispatcher(transport).dispatch({"+15550001"}, link)
    message = transport.calls[0][1]
    assert message.startswith("EMERGENCY ALERT!")
    assert f"Location: {link}" in message
    assert message.endswith("Please contact me or authorities immediately.")


def test_message_without_location():
    assert "Location: Location unavailable" in format_alert_message(None)
    assert "Location: Location unavailable" in format_alert_message("")


def test_static_location_provider():
    provider = StaticLocationProvider(40.7128, -74.006)
    assert provider.current_location() == "https://maps.google.com/?q=40.7128,-74.006"
    assert resolve_location(provider, timeout_s=1.0) == provider.current_location()
    assert resolve_location(None, timeout_s=1.0) is None


def test_log_transport_records_messages():
    log = LogTransport()
    assert log.send("+15550001", "help") == Sent()
    assert log.sent == [("+15550001", "help")]


def test_twilio_transport_sends_sms():
    client = mock.MagicMock()
    client.messages.create.return_value = mock.Mock(sid="SM1", status="queued")
    sms = TwilioSmsTransport("+15559999", client=client)

    assert sms.send("+15550001", "help") == Sent()
    client.messages.create.assert_called_once_with(body="help", from_="+15559999", to="+15550001")


def test_twilio_failed_status_is_reported():
    client = mock.MagicMock()
    client.messages.create.return_value = mock.Mock(sid="SM2", status="undelivered", error_message="blocked")
    result = TwilioSmsTransport("+15559999", client=client).send("+15550001", "help")
    assert isinstance(result, Failed)
    assert "undelivered" in result.reason
    assert "blocked" in result.reason


def test_twilio_exception_isolated_by_dispatcher(contacts):
    client = mock.MagicMock()
    client.messages.create.side_effect = RuntimeError("HTTP 401")
    report = AlertDispatcher(TwilioSmsTransport("+15559999", client=client)).dispatch(contacts)
    assert report.failure_count == 3
    assert client.messages.create.call_count == 3


def test_twilio_from_env_requires_settings(monkeypatch):
    monkeypatch.delenv("TWILIO_ACCOUNT_SID", raising=False)
    monkeypatch.setenv("TWILIO_AUTH_TOKEN", "secret")
    monkeypatch.delenv("TWILIO_FROM_NUMBER", raising=False)
    with pytest.raises(ValueError, match="TWILIO_ACCOUNT_SID"):
        TwilioSmsTransport.from_env()
