import random
from unittest import mock

import pytest

import beacon_sdk
from beacon_sdk import Hub, start_transaction
from beacon_sdk.tracing import Transaction
from beacon_sdk.tracing_utils import sample


def test_no_client_means_not_sampled():
    transaction = Hub().start_transaction(name="hi")

    assert transaction.sampled is False
    assert transaction.sample_rate is None


def test_tracing_disabled_means_not_sampled(beacon_init):
    traces_sampler = mock.Mock(return_value=1.0)
    beacon_init(enable_tracing=False, traces_sampler=traces_sampler)

    transaction = start_transaction(name="hi")

    assert transaction.sampled is False
    traces_sampler.assert_not_called()


def test_no_rates_means_tracing_disabled(beacon_init):
    beacon_init()

    assert start_transaction(name="hi").sampled is False


@pytest.mark.parametrize("sampled", [True, False])
def test_explicit_decision_wins(beacon_init, sampled):
    traces_sampler = mock.Mock(return_value=not sampled)
    beacon_init(traces_sampler=traces_sampler)

    transaction = start_transaction(name="hi", sampled=sampled)

    assert transaction.sampled is sampled
    assert transaction.sample_rate is None
    traces_sampler.assert_not_called()


@pytest.mark.parametrize("parent_sampled", [True, False])
def test_parent_decision_is_inherited(beacon_init, parent_sampled):
    beacon_init(traces_sample_rate=0.5)

    with mock.patch("beacon_sdk.tracing_utils.random.random") as fake_random:
        transaction = start_transaction(name="hi", parent_sampled=parent_sampled)

    assert transaction.sampled is parent_sampled
    assert transaction.sample_rate == (1.0 if parent_sampled else 0.0)
    fake_random.assert_not_called()


def test_parent_decision_from_incoming_header(beacon_init):
    beacon_init(traces_sample_rate=0.0)

    transaction = Transaction.continue_from_headers(
        {"sentry-trace": "771a43a4192642f0b136d5159a501700-1234567890abcdef-1"},
        name="continued",
    )
    transaction = start_transaction(transaction)

    assert transaction.parent_sampled is True
    assert transaction.sampled is True
    assert transaction.trace_id == "771a43a4192642f0b136d5159a501700"


@pytest.mark.parametrize("parent_sampled", [True, False, None])
def test_traces_sampler_wins_over_parent(beacon_init, parent_sampled):
    traces_sampler = mock.Mock(return_value=0.0)
    beacon_init(traces_sample_rate=1.0, traces_sampler=traces_sampler)

    transaction = start_transaction(name="hi", parent_sampled=parent_sampled)

    assert transaction.sampled is False
    assert transaction.sample_rate == 0.0
    traces_sampler.assert_called_once()


def test_traces_sampler_gets_sampling_context(beacon_init):
    traces_sampler = mock.Mock(return_value=1.0)
    beacon_init(traces_sampler=traces_sampler)

    start_transaction(
        name="dogpark",
        op="task",
        parent_sampled=True,
        custom_sampling_context={"dog": "Lily"},
    )

    (sampling_context,), _ = traces_sampler.call_args
    assert sampling_context["dog"] == "Lily"
    assert sampling_context["parent_sampled"] is True
    assert sampling_context["transaction_context"]["name"] == "dogpark"
    assert sampling_context["transaction_context"]["op"] == "task"


@pytest.mark.parametrize(
    "rate",
    [-0.1, 1.1, float("nan"), "0.5", None, [0.5], {"rate": 0.5}],
)
def test_invalid_rate_means_not_sampled(beacon_init, sdk_logs, rate):
    beacon_init(traces_sampler=lambda _: rate)

    transaction = start_transaction(name="hi")

    assert transaction.sampled is False
    assert transaction.sample_rate is None
    assert any(
        "Given sample rate is invalid" in record.getMessage()
        for record in sdk_logs.records
    )


@pytest.mark.tests_internal_exceptions
def test_failing_traces_sampler_means_not_sampled(beacon_init):
    def traces_sampler(sampling_context):
        raise RuntimeError("broken sampler")

    beacon_init(traces_sampler=traces_sampler)

    transaction = start_transaction(name="hi")

    assert transaction.sampled is False
    assert transaction.sample_rate is None
    assert transaction._span_recorder is None


@pytest.mark.parametrize("rate,expected", [(True, True), (False, False), (1, True), (0, False)])
def test_booleans_and_ints_are_valid_rates(beacon_init, rate, expected):
    beacon_init(traces_sampler=lambda _: rate)

    transaction = start_transaction(name="hi")

    assert transaction.sampled is expected
    assert transaction.sample_rate == float(rate)


@pytest.mark.parametrize("rate,expected", [(0.0, False), (1.0, True)])
def test_edge_rates_skip_random(beacon_init, rate, expected):
    beacon_init(traces_sample_rate=rate)

    with mock.patch("beacon_sdk.tracing_utils.random.random") as fake_random:
        transaction = start_transaction(name="hi")

    assert transaction.sampled is expected
    assert transaction.sample_rate == rate
    fake_random.assert_not_called()


@pytest.mark.parametrize(
    "random_value,expected", [(0.0, True), (0.49, True), (0.5, False), (0.99, False)]
)
def test_random_draw_against_rate(beacon_init, random_value, expected):
    beacon_init(traces_sample_rate=0.5)

    with mock.patch(
        "beacon_sdk.tracing_utils.random.random", return_value=random_value
    ):
        transaction = start_transaction(name="hi")

    assert transaction.sampled is expected
    assert transaction.sample_rate == 0.5


def test_sampled_frequency_converges_to_rate():
    rng = random.Random(1234)

    with mock.patch("beacon_sdk.tracing_utils.random.random", rng.random):
        hits = sum(sample(0.3) for _ in range(10000))

    assert abs(hits / 10000 - 0.3) < 0.02


def test_enable_tracing_defaults_to_full_rate(beacon_init):
    beacon_init(enable_tracing=True)

    transaction = start_transaction(name="hi")

    assert transaction.sampled is True
    assert transaction.sample_rate == 1.0


def test_sampled_transaction_records_spans(beacon_init, capture_events):
    beacon_init(traces_sample_rate=1.0, max_spans=2)
    events = capture_events()

    with start_transaction(name="hi") as transaction:
        assert transaction._span_recorder is not None
        for i in range(4):
            with transaction.start_child(op="db", description=str(i)):
                pass

    (event,) = events
    assert event["type"] == "transaction"
    assert event["transaction"] == "hi"
    assert [span["description"] for span in event["spans"]] == ["0", "1"]


def test_unsampled_transaction_is_not_sent(beacon_init, capture_events):
    beacon_init(traces_sample_rate=1.0)
    events = capture_events()

    with start_transaction(name="hi", sampled=False) as transaction:
        assert transaction._span_recorder is None
        with transaction.start_child(op="db"):
            pass

    assert events == []


def test_transactions_ignore_error_sample_rate(beacon_init, capture_events):
    beacon_init(traces_sample_rate=1.0, sample_rate=0.0)
    events = capture_events()

    with start_transaction(name="/"):
        pass

    assert len(events) == 1


def test_no_profile_without_profiles_sample_rate(beacon_init):
    beacon_init(traces_sample_rate=1.0)

    with mock.patch("beacon_sdk.tracing_utils.random.random") as fake_random:
        transaction = start_transaction(name="hi")

    assert transaction.profile is None
    fake_random.assert_not_called()


def test_profile_started_for_sampled_transaction(beacon_init):
    beacon_init(traces_sample_rate=1.0, profiles_sample_rate=1.0)

    transaction = start_transaction(name="hi")
    try:
        assert transaction.profile is not None
        assert transaction.profile.active
    finally:
        transaction.profile.stop()


def test_profile_coin_is_independent(beacon_init):
    beacon_init(traces_sample_rate=0.5, profiles_sample_rate=0.5)

    with mock.patch(
        "beacon_sdk.tracing_utils.random.random", side_effect=[0.1, 0.9]
    ) as fake_random:
        transaction = start_transaction(name="hi")

    assert transaction.sampled is True
    assert transaction.profile is None
    assert fake_random.call_count == 2


def test_no_profile_for_unsampled_transaction(beacon_init):
    beacon_init(traces_sample_rate=0.0, profiles_sample_rate=1.0)

    transaction = start_transaction(name="hi")

    assert transaction.profile is None


def test_scope_tracks_active_transaction(beacon_init):
    beacon_init(traces_sample_rate=1.0)

    with start_transaction(name="outer") as transaction:
        with transaction.start_child(op="child") as span:
            assert beacon_sdk.get_current_span() is span
            assert Hub.current.transaction is transaction

    assert Hub.current.span is None
