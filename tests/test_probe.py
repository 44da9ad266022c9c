import os

from gwtune.probe import ObservedState, Prober, parse_root_qdisc


def test_parse_root_qdisc():
    assert parse_root_qdisc("qdisc fq 8001: root refcnt 2 limit 10000p flow_limit 100p\n") == "fq"
    assert parse_root_qdisc("qdisc noqueue 0: root refcnt 2\n") == "noqueue"
    text = "qdisc mq 0: root\nqdisc fq_codel 0: parent :1 limit 10240p\n"
    assert parse_root_qdisc(text) == "mq"
    assert parse_root_qdisc("") is None


def test_probe_reads_live_state(host, ops):
    state = Prober(ops).probe("eth0")
    assert state == ObservedState(
        iface="eth0",
        qdisc="pfifo_fast",
        congestion_control="cubic",
        available=frozenset({"reno", "cubic", "bbr"}),
    )
    assert state.availability_known


def test_probe_degrades_to_unknown(host, ops):
    host.fail_show = True
    os.remove(os.path.join(host.proc_sys, "net", "ipv4", "tcp_available_congestion_control"))
    os.remove(os.path.join(host.proc_sys, "net", "ipv4", "tcp_congestion_control"))

    state = Prober(ops).probe("eth0")
    assert state.qdisc is None
    assert state.congestion_control is None
    assert state.available == frozenset()
    assert not state.availability_known


def test_snapshot_is_rebuilt_every_probe(host, ops):
    prober = Prober(ops)
    first = prober.probe("eth0")
    host.set_sysctl("net.ipv4.tcp_congestion_control", "bbr")
    second = prober.probe("eth0")
    assert first.congestion_control == "cubic"
    assert second.congestion_control == "bbr"
    assert second.as_dict()["available"] == ["bbr", "cubic", "reno"]
