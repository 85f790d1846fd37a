"""Tests for the renewal decision rules."""

from datetime import datetime, timezone

import pytest

from fms_cert_manager.certificate import CertificateRecord
from fms_cert_manager.decision import Action, decide
from fms_cert_manager.state import StateRecord


def _state(hostname="example.com", staging=True):
    return StateRecord(
        hostname=hostname,
        email="admin@example.com",
        is_staging_environment=staging,
        last_run_timestamp=datetime(2026, 1, 1, tzinfo=timezone.utc),
        certificate_confirmed_present=True,
    )


def _cert(days):
    return CertificateRecord(exists=True, days_remaining=days)


MISSING = CertificateRecord(exists=False)


def test_first_run_without_certificate_requests(make_params):
    assert decide(make_params(), None, MISSING).action == Action.REQUEST


def test_valid_certificate_is_skipped_twice_in_a_row(make_params):
    params = make_params()
    state = _state()
    first = decide(params, state, _cert(60))
    second = decide(params, state, _cert(60))
    assert first.action == Action.SKIP
    assert second.action == Action.SKIP


def test_exactly_thirty_days_is_skipped(make_params):
    assert decide(make_params(), _state(), _cert(30)).action == Action.SKIP


def test_twenty_nine_days_is_renewed(make_params):
    assert decide(make_params(), _state(), _cert(29)).action == Action.RENEW


def test_expired_certificate_is_renewed(make_params):
    assert decide(make_params(), _state(), _cert(-3)).action == Action.RENEW


def test_custom_threshold(make_params):
    assert decide(make_params(), _state(), _cert(40), threshold_days=45).action == Action.RENEW
    assert decide(make_params(), _state(), _cert(45), threshold_days=45).action == Action.SKIP


@pytest.mark.parametrize("cert", [MISSING, _cert(80), _cert(5)])
def test_hostname_change_requests_regardless_of_certificate(make_params, cert):
    params = make_params(hostname="b.example.com")
    decision = decide(params, _state(hostname="a.example.com"), cert)
    assert decision.action == Action.REQUEST
    assert "a.example.com" in decision.reason


@pytest.mark.parametrize("prior_staging,use_production", [(True, True), (False, False)])
def test_environment_change_requests(make_params, prior_staging, use_production):
    params = make_params(use_production_environment=use_production)
    decision = decide(params, _state(staging=prior_staging), _cert(80))
    assert decision.action == Action.REQUEST
    assert "Environment changed" in decision.reason


def test_environment_change_wins_over_force(make_params):
    params = make_params(use_production_environment=True, force_renew=True)
    assert decide(params, _state(staging=True), _cert(80)).action == Action.REQUEST


def test_force_with_certificate_renews(make_params):
    params = make_params(force_renew=True)
    assert decide(params, _state(), _cert(80)).action == Action.RENEW


def test_force_without_certificate_requests(make_params):
    params = make_params(force_renew=True)
    assert decide(params, _state(), MISSING).action == Action.REQUEST


def test_corrupt_certificate_is_requested(make_params):
    corrupt = CertificateRecord(exists=False, corrupt=True)
    decision = decide(make_params(), _state(), corrupt)
    assert decision.action == Action.REQUEST
    assert "unreadable" in decision.reason


def test_staging_to_production_switch_with_same_hostname(make_params):
    # prior run issued from staging; this run asks for production
    params = make_params(hostname="example.com", use_production_environment=True)
    prior = _state(hostname="example.com", staging=True)
    assert decide(params, prior, _cert(85)).action == Action.REQUEST
