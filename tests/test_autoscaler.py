import time
from unittest import mock

from conftest import FakeResponse, FakeSession, fake_resolver, stats_csv
from marathon_autoscale.autoscaler import Autoscaler
from marathon_autoscale.haproxy_monitor import HAProxyMonitor
from marathon_autoscale.marathon_monitor import MarathonMonitor
from marathon_autoscale.marathon_scaler import MarathonScaler

STATS_1 = "http://10.0.0.1:9090/haproxy?stats;csv"
STATS_2 = "http://10.0.0.2:9090/haproxy?stats;csv"
APPS_URL = "http://marathon:8080/v2/apps"
SCALE_WEB = "http://marathon:8080/v2/apps/web"


def build_autoscaler(options, session, clock):
    return Autoscaler(
        options,
        sampler=HAProxyMonitor(
            options.haproxy, options.apps, session=session,
            resolver=fake_resolver({"lb": ["10.0.0.1", "10.0.0.2"]}),
        ),
        tracker=MarathonMonitor(options.marathon, session=session),
        scaler=MarathonScaler(options.marathon, session=session, clock=clock),
        clock=clock,
    )


def scale_calls(session):
    return [call for call in session.calls if call[0] == "PUT"]


def test_scales_web_to_three_instances(make_options, clock):
    options = make_options()
    # two load balancers each see 1490 rps plus 10 queued for web_80
    page = stats_csv(("web_80", "FRONTEND", "10", "0", "1490"))
    session = FakeSession({
        ("GET", STATS_1): FakeResponse(text=page),
        ("GET", STATS_2): FakeResponse(text=page),
        ("GET", APPS_URL): FakeResponse(payload={"apps": [{"id": "/web", "instances": 2}]}),
        ("PUT", SCALE_WEB): FakeResponse(),
    })
    autoscaler = build_autoscaler(options, session, clock)

    for _ in range(9):
        assert autoscaler.run_once() == {}
    assert not autoscaler.warmed_up
    assert autoscaler.entries["web_80"].rate_avg == 3000

    # warmed up: three consecutive intervals past threshold
    assert autoscaler.run_once() == {}
    assert autoscaler.run_once() == {}
    assert autoscaler.run_once() == {"web": 3}

    puts = scale_calls(session)
    assert len(puts) == 1
    assert puts[0][1] == SCALE_WEB
    assert puts[0][2]["json"] == {"instances": 3}

    # Marathon still reports 2, but the scale is in cooldown
    assert autoscaler.run_once() == {}
    assert len(scale_calls(session)) == 1


def test_window_never_exceeds_samples(make_options, clock):
    options = make_options(samples=3)
    page = stats_csv(("web_80", "FRONTEND", "0", "0", "100"))
    session = FakeSession({
        ("GET", STATS_1): FakeResponse(text=page),
        ("GET", APPS_URL): FakeResponse(payload={"apps": [{"id": "/web", "instances": 1}]}),
    })
    autoscaler = build_autoscaler(options, session, clock)

    for _ in range(7):
        autoscaler.run_once()
        assert len(autoscaler.entries["web_80"].window) <= 3

    assert autoscaler.entries["web_80"].window.values() == [100, 100, 100]
    assert autoscaler.aggregator.ticks == 7


def test_unreachable_load_balancers_still_refresh_instances(make_options, clock):
    options = make_options()
    session = FakeSession({
        ("GET", APPS_URL): FakeResponse(payload={"apps": [{"id": "/web", "instances": 4}]}),
    })
    autoscaler = build_autoscaler(options, session, clock)

    assert autoscaler.run_once() == {}
    assert autoscaler.aggregator.ticks == 0
    assert sorted(call[1] for call in session.calls) == [STATS_1, STATS_2, APPS_URL]
    assert autoscaler.entries["web_80"].current_instances == 4


def test_failed_tick_is_logged_and_loop_continues(make_options, clock, caplog):
    sampler = mock.Mock()
    sampler.sample_all.side_effect = [RuntimeError("boom"), []]
    autoscaler = Autoscaler(
        make_options(), sampler=sampler, tracker=mock.Mock(), scaler=mock.Mock(),
        clock=clock, timer=mock.Mock(return_value=0.0), sleep=mock.Mock(),
    )

    autoscaler.run(max_ticks=2)

    assert sampler.sample_all.call_count == 2
    assert "Autoscale tick failed" in caplog.text


def test_sleep_is_anchored_to_tick_start(make_options, clock):
    sampler = mock.Mock()
    sampler.sample_all.return_value = []
    sleep = mock.Mock()
    # tick 1 starts at 100 and ends at 115, tick 2 overruns from 160 to 230
    timer = mock.Mock(side_effect=[100.0, 115.0, 160.0, 230.0, 230.0])
    autoscaler = Autoscaler(
        make_options(interval=60.0), sampler=sampler, tracker=mock.Mock(), scaler=mock.Mock(),
        clock=clock, timer=timer, sleep=sleep,
    )

    autoscaler.run(max_ticks=3)

    sleep.assert_called_once_with(45.0)
    assert sampler.sample_all.call_count == 3


def test_stop_ends_the_loop(make_options, clock):
    autoscaler = Autoscaler(
        make_options(), sampler=mock.Mock(), tracker=mock.Mock(), scaler=mock.Mock(),
        clock=clock, timer=mock.Mock(return_value=0.0), sleep=mock.Mock(),
    )
    autoscaler.sampler.sample_all.side_effect = lambda: autoscaler.stop() or []

    autoscaler.run()

    assert autoscaler.sampler.sample_all.call_count == 1


def test_no_scale_call_while_warming_up(make_options, clock):
    tracker = mock.Mock()
    scaler = mock.Mock()
    sampler = mock.Mock()
    sampler.sample_all.return_value = [("h", {"web_80": {"req_rate": "9000", "qcur": "0"}})]
    autoscaler = Autoscaler(make_options(samples=5, intervals_past_threshold=1),
                            sampler=sampler, tracker=tracker, scaler=scaler, clock=clock)
    autoscaler.entries["web_80"].current_instances = 1

    for _ in range(4):
        assert autoscaler.run_once() == {}
    scaler.scale_apps.assert_not_called()
    assert autoscaler.entries["web_80"].target_instances == 9

    assert autoscaler.run_once() == {"web": 9}
    scaler.scale_apps.assert_called_once_with({"web": 9})


def test_status_snapshot(make_options, clock):
    autoscaler = Autoscaler(make_options(), sampler=mock.Mock(), tracker=mock.Mock(),
                            scaler=mock.Mock(), clock=clock)

    status = autoscaler.status()

    assert status["warmed_up"] is False
    assert status["options"]["target_rps"] == 1000
    assert status["apps"][0]["key"] == "web_80"
    assert status["apps"][0]["app_id"] == "web"
    assert status["apps"][0]["last_scaled"] is None


def test_stop_interrupts_the_interval_wait(make_options, clock):
    autoscaler = Autoscaler(
        make_options(interval=3600.0), sampler=mock.Mock(), tracker=mock.Mock(),
        scaler=mock.Mock(), clock=clock,
    )
    autoscaler.sampler.sample_all.side_effect = lambda: autoscaler.stop() or []

    started = time.monotonic()
    autoscaler.run()

    assert time.monotonic() - started < 5
    assert autoscaler.sampler.sample_all.call_count == 1
