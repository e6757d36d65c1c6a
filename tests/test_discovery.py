"""Tests for network discovery methods and the fallback engine."""

import asyncio

import pytest

from netwatch._types import ThreatLevel
from netwatch.discovery import ARPTableDiscovery, NetworkDiscoveryEngine, NmapPingSweep
from netwatch.errors import DiscoveryExhausted, MalformedInput
from netwatch.utils import CommandError, CommandResult


NMAP_OUTPUT = """\
Starting Nmap 7.94 ( https://nmap.org ) at 2024-01-01 10:00 UTC
Nmap scan report for 192.168.1.1
Host is up (0.0021s latency).
Nmap scan report for 192.168.1.20
Host is up (0.0100s latency).
Nmap done: 256 IP addresses (2 hosts up) scanned in 2.51 seconds
"""


class FakeRunner:
    """Process collaborator returning canned results per executable."""

    def __init__(self, outcomes):
        self.outcomes = outcomes
        self.calls = []

    async def __call__(self, cmd, timeout):
        self.calls.append((cmd, timeout))
        outcome = self.outcomes[cmd[0]]
        if isinstance(outcome, BaseException):
            raise outcome
        return CommandResult(exit_code=0, stdout=outcome, stderr="", duration_sec=0.1)


class TestNmapPingSweep:
    """Tests for ping sweep output parsing."""

    def test_build_command(self):
        assert NmapPingSweep().build_command("10.0.0.0/24") == ["nmap", "-sn", "10.0.0.0/24"]

    def test_parse_two_hosts(self):
        devices = NmapPingSweep().parse(NMAP_OUTPUT)

        assert [d.address for d in devices] == ["192.168.1.1", "192.168.1.20"]
        assert all(d.threat_level == ThreatLevel.SCANNING for d in devices)
        assert all(d.hardware_address is None for d in devices)

    def test_parse_named_host(self):
        device = NmapPingSweep().parse_line("Nmap scan report for router.lan (192.168.1.1)")

        assert device.address == "192.168.1.1"
        assert device.display_name == "router.lan"

    def test_non_report_lines_ignored(self):
        assert NmapPingSweep().parse_line("Host is up (0.0021s latency).") is None

    def test_report_without_address_is_malformed(self):
        with pytest.raises(MalformedInput):
            NmapPingSweep().parse_line("Nmap scan report for nowhere")

    def test_malformed_line_skipped_in_batch(self):
        output = "Nmap scan report for nowhere\nNmap scan report for 10.0.0.7\n"
        devices = NmapPingSweep().parse(output)
        assert [d.address for d in devices] == ["10.0.0.7"]

    def test_duplicate_hosts_collapsed(self):
        output = "Nmap scan report for 10.0.0.7\nNmap scan report for 10.0.0.7\n"
        assert len(NmapPingSweep().parse(output)) == 1


class TestARPTableDiscovery:
    """Tests for ARP table parsing by column position."""

    def test_build_command_ignores_subnet(self):
        assert ARPTableDiscovery().build_command("10.0.0.0/24") == ["arp", "-a"]

    def test_parse_linux_line(self):
        device = ARPTableDiscovery().parse_line(
            "? (192.168.1.5) at aa:bb:cc:dd:ee:ff [ether] on eth0"
        )

        assert device.address == "192.168.1.5"
        assert device.hardware_address == "aa:bb:cc:dd:ee:ff"
        assert device.display_name is None
        assert device.threat_level == ThreatLevel.UNKNOWN

    def test_parse_macos_line_with_hostname(self):
        device = ARPTableDiscovery().parse_line(
            "gateway (192.168.88.1) at 0:50:56:c0:0:8 on en0 ifscope [ethernet]"
        )

        assert device.address == "192.168.88.1"
        assert device.display_name == "gateway"
        assert device.hardware_address == "0:50:56:c0:0:8"

    def test_incomplete_entry_has_no_hardware_address(self):
        device = ARPTableDiscovery().parse_line("? (192.168.1.100) at <incomplete> on eth0")

        assert device.address == "192.168.1.100"
        assert device.hardware_address is None

    def test_garbage_line_is_malformed(self):
        with pytest.raises(MalformedInput):
            ARPTableDiscovery().parse_line("Address HWtype HWaddress Flags Mask Iface")

    def test_blank_lines_skipped(self):
        output = "\n? (192.168.1.5) at aa:bb:cc:dd:ee:ff\n   \n"
        assert len(ARPTableDiscovery().parse(output)) == 1


class TestNetworkDiscoveryEngine:
    """Tests for the primary/fallback pipeline."""

    @pytest.mark.asyncio
    async def test_primary_success(self):
        runner = FakeRunner({"nmap": NMAP_OUTPUT, "arp": AssertionError("unused")})
        engine = NetworkDiscoveryEngine(runner=runner, timeout=5)

        devices = await engine.discover("192.168.1.0/24")

        assert len(devices) == 2
        assert all(d.threat_level == ThreatLevel.SCANNING for d in devices)
        assert all(d.hardware_address is None for d in devices)
        assert runner.calls == [(["nmap", "-sn", "192.168.1.0/24"], 5)]

    @pytest.mark.asyncio
    async def test_fallback_on_missing_primary(self):
        runner = FakeRunner({
            "nmap": FileNotFoundError("nmap"),
            "arp": "? (192.168.1.5) at aa:bb:cc:dd:ee:ff\n",
        })
        engine = NetworkDiscoveryEngine(runner=runner)

        devices = await engine.discover("192.168.1.0/24")

        assert len(devices) == 1
        assert devices[0].address == "192.168.1.5"
        assert devices[0].hardware_address == "aa:bb:cc:dd:ee:ff"
        assert devices[0].threat_level == ThreatLevel.UNKNOWN
        assert runner.calls[1][0] == ["arp", "-a"]

    @pytest.mark.asyncio
    async def test_fallback_on_nonzero_exit(self):
        runner = FakeRunner({
            "nmap": CommandError(["nmap"], 1, stderr="requires root"),
            "arp": "? (10.0.0.2) at 11:22:33:44:55:66\n",
        })

        devices = await NetworkDiscoveryEngine(runner=runner).discover("10.0.0.0/24")

        assert [d.address for d in devices] == ["10.0.0.2"]

    @pytest.mark.asyncio
    async def test_fallback_on_timeout(self):
        runner = FakeRunner({
            "nmap": asyncio.TimeoutError(),
            "arp": "? (10.0.0.2) at 11:22:33:44:55:66\n",
        })

        devices = await NetworkDiscoveryEngine(runner=runner).discover("10.0.0.0/24")

        assert len(devices) == 1

    @pytest.mark.asyncio
    async def test_both_commands_fail(self):
        runner = FakeRunner({
            "nmap": FileNotFoundError("nmap"),
            "arp": CommandError(["arp", "-a"], 2, stderr="broken"),
        })

        with pytest.raises(DiscoveryExhausted) as exc_info:
            await NetworkDiscoveryEngine(runner=runner).discover("10.0.0.0/24")

        assert set(exc_info.value.failures) == {"nmap-ping", "arp"}

    @pytest.mark.asyncio
    async def test_empty_output_is_not_an_error(self):
        runner = FakeRunner({"nmap": "Nmap done: 256 IP addresses (0 hosts up)\n", "arp": ""})

        devices = await NetworkDiscoveryEngine(runner=runner).discover("10.0.0.0/24")

        assert devices == []
        assert len(runner.calls) == 1

    @pytest.mark.asyncio
    async def test_invalid_subnet_rejected_before_running(self):
        runner = FakeRunner({})

        with pytest.raises(ValueError):
            await NetworkDiscoveryEngine(runner=runner).discover("not-a-subnet")

        assert runner.calls == []

    @pytest.mark.asyncio
    async def test_host_address_normalized_to_network(self):
        runner = FakeRunner({"nmap": ""})

        await NetworkDiscoveryEngine(runner=runner).discover("192.168.1.17/24")

        assert runner.calls[0][0][-1] == "192.168.1.0/24"
