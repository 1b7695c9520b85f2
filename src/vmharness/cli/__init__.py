"""CLI interface for driving test guests: readiness, script runs and inspection."""
from __future__ import annotations

import argparse
import logging
import time
from pathlib import Path
from typing import Callable, Optional

from vmharness.channel import GuestChannel
from vmharness.config import HarnessConfig, get_harness_config
from vmharness.inspection import detect_distribution, is_module_loaded
from vmharness.orchestration import RemoteScriptRunner
from vmharness.readiness import probe_port, wait_for_guest, wait_for_shutdown
from vmharness.types import GuestEndpoint, RemoteScriptJob, RunnerSettings

logger = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(message)s")
    else:
        root.setLevel(level)
    # paramiko is chatty at INFO
    logging.getLogger("paramiko").setLevel(logging.WARNING)


def _add_guest_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--address", type=str, required=True, help="Guest IPv4 address")
    parser.add_argument("--key", type=str, required=True, help="Private key file name inside the key directory")
    parser.add_argument("--user", type=str, default=None, help="SSH user (default: VMHARNESS_SSH_USER or root)")


def _add_hypervisor_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--domain", type=str, required=True, help="Libvirt domain name")
    parser.add_argument("--uri", type=str, default=None, help="Hypervisor URI (default: VMHARNESS_HYPERVISOR_URI)")


def _endpoint(args: argparse.Namespace, config: HarnessConfig, address: Optional[str] = None) -> GuestEndpoint:
    return GuestEndpoint(
        address=address or args.address,
        key_path=config.key_path(args.key),
        username=args.user or config.ssh_user,
        port=config.ssh_port,
    )


def _hypervisor(args: argparse.Namespace, config: HarnessConfig):
    # libvirt is only needed by the hypervisor commands
    from vmharness.hypervisor import HypervisorManager

    return HypervisorManager(args.uri or config.hypervisor_uri)


def handle_run(args: argparse.Namespace) -> int:
    config = get_harness_config()
    endpoint = _endpoint(args, config)
    settings = RunnerSettings(
        work_dir=Path(args.work_dir),
        script_dir=config.script_dir,
        log_dir=Path(args.log_dir) if args.log_dir else config.log_dir,
        poll_interval=config.poll_interval,
    )
    job = RemoteScriptJob(
        script_name=args.script,
        poll_budget=args.budget if args.budget is not None else config.poll_budget,
    )

    runner = RemoteScriptRunner(GuestChannel(endpoint), settings)
    result = runner.run(endpoint, job)

    print(f"Outcome       : {result.outcome.value}")
    print(f"Status polls  : {result.polls}")
    if result.log_file:
        print(f"Log file      : {result.log_file}")
    return 0 if result.success else 1


def handle_wait(args: argparse.Namespace) -> int:
    config = get_harness_config()
    timeout = args.timeout if args.timeout is not None else config.readiness_timeout

    def channel_factory(address: str) -> GuestChannel:
        return GuestChannel(_endpoint(args, config, address))

    if args.domain:
        with _hypervisor(args, config) as manager:
            started = time.monotonic()
            if not manager.wait_for_boot(args.domain, timeout=timeout, interval=config.state_interval):
                return 1
            ready = wait_for_guest(
                args.domain,
                channel_factory,
                timeout=max(timeout - (time.monotonic() - started), 0),
                port=config.ssh_port,
                probe_timeout=config.probe_timeout,
                interval=config.readiness_interval,
                resolve_address=manager.ip_address,
            )
    else:
        ready = wait_for_guest(
            args.address,
            channel_factory,
            timeout=timeout,
            port=config.ssh_port,
            probe_timeout=config.probe_timeout,
            interval=config.readiness_interval,
        )
    return 0 if ready else 1


def handle_wait_shutdown(args: argparse.Namespace) -> int:
    config = get_harness_config()
    timeout = args.timeout if args.timeout is not None else config.readiness_timeout

    if args.domain:
        with _hypervisor(args, config) as manager:
            down = manager.wait_for_shutdown(args.domain, timeout=timeout, interval=config.state_interval)
    else:
        down = wait_for_shutdown(
            args.address,
            timeout=timeout,
            port=config.ssh_port,
            probe_timeout=config.probe_timeout,
            interval=config.readiness_interval,
        )
    return 0 if down else 1


def handle_probe(args: argparse.Namespace) -> int:
    reachable = probe_port(args.address, args.port, args.timeout)
    print(f"{args.address}:{args.port} {'open' if reachable else 'closed'}")
    return 0 if reachable else 1


def handle_ip(args: argparse.Namespace) -> int:
    config = get_harness_config()
    with _hypervisor(args, config) as manager:
        address = manager.ip_address(args.domain)
    if not address:
        logger.error(f"No IPv4 address found for domain {args.domain}")
        return 1
    print(address)
    return 0


def handle_state(args: argparse.Namespace) -> int:
    config = get_harness_config()
    with _hypervisor(args, config) as manager:
        print(manager.domain_state(args.domain))
    return 0


def handle_distro(args: argparse.Namespace) -> int:
    config = get_harness_config()
    print(detect_distribution(GuestChannel(_endpoint(args, config))))
    return 0


def handle_module(args: argparse.Namespace) -> int:
    config = get_harness_config()
    loaded = is_module_loaded(GuestChannel(_endpoint(args, config)), args.name)
    print("loaded" if loaded else "not loaded")
    return 0 if loaded else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Drive VM guests for integration testing")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # run
    run_parser = subparsers.add_parser("run", help="Run a test script on a guest and poll its status file")
    _add_guest_arguments(run_parser)
    run_parser.add_argument("--script", type=str, required=True, help="Script name inside the scripts directory")
    run_parser.add_argument("--budget", type=int, default=None, help="Maximum status polls (default: from settings)")
    run_parser.add_argument("--work-dir", type=str, default=".", help="Local staging directory (default: .)")
    run_parser.add_argument("--log-dir", type=str, default=None, help="Directory for collected logs")
    run_parser.set_defaults(handler=handle_run)

    # wait
    wait_parser = subparsers.add_parser("wait", help="Wait until a guest answers over SSH")
    target = wait_parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--address", type=str, help="Guest IPv4 address")
    target.add_argument("--domain", type=str, help="Libvirt domain name; address is discovered")
    wait_parser.add_argument("--key", type=str, required=True, help="Private key file name inside the key directory")
    wait_parser.add_argument("--user", type=str, default=None, help="SSH user")
    wait_parser.add_argument("--uri", type=str, default=None, help="Hypervisor URI")
    wait_parser.add_argument("--timeout", type=float, default=None, help="Overall budget in seconds")
    wait_parser.set_defaults(handler=handle_wait)

    # wait-shutdown
    down_parser = subparsers.add_parser("wait-shutdown", help="Wait until a guest is down")
    target = down_parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--address", type=str, help="Guest IPv4 address")
    target.add_argument("--domain", type=str, help="Libvirt domain name")
    down_parser.add_argument("--uri", type=str, default=None, help="Hypervisor URI")
    down_parser.add_argument("--timeout", type=float, default=None, help="Overall budget in seconds")
    down_parser.set_defaults(handler=handle_wait_shutdown)

    # probe
    probe_parser = subparsers.add_parser("probe", help="Check whether a TCP port accepts connections")
    probe_parser.add_argument("--address", type=str, required=True, help="Host address")
    probe_parser.add_argument("--port", type=int, default=22, help="TCP port (default: 22)")
    probe_parser.add_argument("--timeout", type=float, default=2.0, help="Seconds to wait (default: 2)")
    probe_parser.set_defaults(handler=handle_probe)

    # ip
    ip_parser = subparsers.add_parser("ip", help="Print the IPv4 address of a domain")
    _add_hypervisor_arguments(ip_parser)
    ip_parser.set_defaults(handler=handle_ip)

    # state
    state_parser = subparsers.add_parser("state", help="Print the libvirt state of a domain")
    _add_hypervisor_arguments(state_parser)
    state_parser.set_defaults(handler=handle_state)

    # distro
    distro_parser = subparsers.add_parser("distro", help="Detect the guest distribution")
    _add_guest_arguments(distro_parser)
    distro_parser.set_defaults(handler=handle_distro)

    # module
    module_parser = subparsers.add_parser("module", help="Check whether a kernel module is loaded on the guest")
    _add_guest_arguments(module_parser)
    module_parser.add_argument("--name", type=str, required=True, help="Kernel module name")
    module_parser.set_defaults(handler=handle_module)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    handler: Callable[[argparse.Namespace], int] = args.handler
    try:
        return handler(args)
    except Exception as exc:  # pragma: no cover - CLI safety net
        logger.error("Command failed: %s", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
