#!/usr/bin/env python3
"""
CLI tool for managing a HiLink LTE router.

Usage:
    hilink info
    hilink --url http://192.168.8.1 -p secret status
    hilink sms list --box 1 --count 10
    hilink sms send +15551234567 "hello from the CLI"
    hilink network set-mode lte
    hilink --format json dhcp show
    hilink -f yaml network mode
    hilink mock --port 8080
"""

import argparse
import asyncio
import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .client import HiLinkClient
from .config import Config, CredentialsConfig, LoggingConfig, load_config
from .errors import ClientError
from .models import (
    DhcpSettingsRequest,
    DhcpStatus,
    NetworkModeRequest,
    NetworkModeType,
    SmsBoxType,
    SmsListRequest,
)

console = Console()

NETWORK_MODES = {
    "auto": NetworkModeType.AUTO,
    "2g": NetworkModeType.GSM_ONLY,
    "3g": NetworkModeType.UMTS_ONLY,
    "lte": NetworkModeType.LTE_ONLY,
    "3g-preferred": NetworkModeType.UMTS_PREFERRED,
    "lte-2g": NetworkModeType.LTE_PREFERRED_GSM,
    "lte-3g": NetworkModeType.LTE_PREFERRED_UMTS,
}


def setup_logging(level: str = "INFO", log_file: Optional[str] = None, verbose: bool = False):
    """Setup logging with rich handler. ``verbose`` forces DEBUG."""
    level = "DEBUG" if verbose else level
    handlers = [RichHandler(console=Console(stderr=True), show_time=False, show_path=False)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=5 * 1024 * 1024,
            backupCount=3,
        ))
    logging.basicConfig(level=getattr(logging, level.upper()), format="%(message)s", handlers=handlers)


def build_config(args) -> Config:
    """Merge the config file, environment and command line flags."""
    if args.config:
        config = load_config(args.config)
    else:
        load_dotenv()
        config = Config()

    device = config.device
    if args.url:
        device.base_url = args.url.rstrip("/")
    if args.timeout:
        device.timeout = args.timeout
    if args.retries:
        device.retry.max_attempts = args.retries

    username = args.username or os.getenv("HILINK_USERNAME")
    password = args.password or os.getenv("HILINK_PASSWORD")
    if password is not None:
        device.credentials = CredentialsConfig(username=username or "admin", password=password)
    elif username and device.credentials is not None:
        device.credentials.username = username
    return config


def print_model(title: str, model: Any, fmt: str) -> None:
    """Print a payload as a two-column table, JSON or YAML."""
    if fmt == "json":
        console.print_json(model.model_dump_json(by_alias=True))
        return
    if fmt == "yaml":
        print_yaml(model.model_dump(mode="json", by_alias=True))
        return
    table = Table(title=title)
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")
    for name, value in model.model_dump().items():
        if value not in (None, ""):
            table.add_row(name.replace("_", " ").title(), str(value))
    console.print(table)


def print_yaml(data: Dict[str, Any]) -> None:
    console.out(yaml.safe_dump(data, sort_keys=False, allow_unicode=True), end="", highlight=False)


def print_result(message: str, fmt: str) -> None:
    if fmt == "json":
        console.print_json(data={"result": "OK", "message": message})
    elif fmt == "yaml":
        print_yaml({"result": "OK", "message": message})
    else:
        console.print(f"[green]{message}[/green]")


async def ensure_login(client: HiLinkClient) -> None:
    """Log in when credentials are configured. Anonymous use is allowed."""
    if client.config.credentials is not None:
        await client.login()


async def cmd_info(client: HiLinkClient, args):
    """Get device information."""
    info = await client.device.information()
    print_model(f"Device Information: {client.base_url}", info, args.format)


async def cmd_status(client: HiLinkClient, args):
    """Connection and signal status."""
    status = await client.monitoring.status()
    if args.format != "table":
        print_model("", status, args.format)
        return

    table = Table(title=f"Connection Status: {client.base_url}")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")
    connection = status.connection
    table.add_row("Connection", connection.name if connection else (status.connection_status or "Unknown"))
    network = status.network_type
    table.add_row("Network", network.label if network else (status.current_network_type or "Unknown"))
    if status.network_type_ex:
        table.add_row("Network (extended)", status.network_type_ex.label)
    if status.signal_level is not None:
        table.add_row("Signal", f"{status.signal_level}/5 ({status.signal_percentage}%)")
    table.add_row("SIM Ready", "yes" if status.is_sim_ready else "no")
    table.add_row("Roaming", "yes" if status.is_roaming else "no")
    table.add_row("Service", "available" if status.is_service_available else "unavailable")
    if status.primary_dns:
        table.add_row("DNS", ", ".join(d for d in (status.primary_dns, status.secondary_dns) if d))
    console.print(table)


async def cmd_reboot(client: HiLinkClient, args):
    """Reboot the device."""
    if not args.yes:
        if not console.input(f"[yellow]Reboot {client.base_url}? [y/N]: [/yellow]").lower().startswith("y"):
            console.print("[dim]Cancelled[/dim]")
            return
    await client.device.reboot()
    print_result("Reboot initiated", args.format)


async def cmd_sms(client: HiLinkClient, args):
    """SMS subcommands."""
    if args.sms_command == "count":
        print_model("SMS Count", await client.sms.count(), args.format)

    elif args.sms_command == "list":
        request = SmsListRequest(
            page_index=args.page,
            read_count=args.count,
            box_type=SmsBoxType(str(args.box)),
            unread_preferred=1 if args.unread_first else 0,
        )
        result = await client.sms.list(request)
        if args.format != "table":
            print_model("", result, args.format)
            return
        if not result.messages:
            console.print("[yellow]No messages[/yellow]")
            return
        table = Table(title=f"Messages ({result.count})")
        table.add_column("Index", style="cyan")
        table.add_column("From/To", style="green")
        table.add_column("Date")
        table.add_column("Status")
        table.add_column("Content")
        for message in result.messages:
            status = message.status
            table.add_row(
                message.index,
                message.phone or "",
                message.date or "",
                status.name.lower() if status else (message.smstat or ""),
                message.content or "",
            )
        console.print(table)

    elif args.sms_command == "send":
        await client.sms.send(args.phones, args.content)
        print_result(f"Message sent to {', '.join(args.phones)}", args.format)

    elif args.sms_command == "delete":
        await client.sms.delete(args.index)
        print_result(f"Message {args.index} deleted", args.format)

    elif args.sms_command == "read":
        await client.sms.mark_read(args.index)
        print_result(f"Message {args.index} marked as read", args.format)


async def cmd_network(client: HiLinkClient, args):
    """Network subcommands."""
    if args.network_command == "mode":
        mode = await client.network.mode()
        if args.format != "table":
            print_model("", mode, args.format)
            return
        table = Table(title="Network Mode")
        table.add_column("Property", style="cyan")
        table.add_column("Value", style="green")
        table.add_row("Mode", mode.mode.label if mode.mode else (mode.network_mode or "Unknown"))
        table.add_row("Network Band", mode.network_band or "")
        table.add_row("LTE Band", mode.lte_band or "")
        console.print(table)

    elif args.network_command == "set-mode":
        request = NetworkModeRequest(network_mode=NETWORK_MODES[args.mode])
        await client.network.set_mode(request)
        print_result(f"Network mode set to {request.network_mode.label}", args.format)

    elif args.network_command == "operator":
        print_model("Operator", await client.network.current_plmn(), args.format)


async def cmd_dhcp(client: HiLinkClient, args):
    """DHCP subcommands."""
    if args.dhcp_command == "show":
        print_model("DHCP Settings", await client.dhcp.settings(), args.format)

    elif args.dhcp_command == "set":
        current = await client.dhcp.settings()
        values: Dict[str, Any] = current.to_request().model_dump()
        overrides = {
            "dhcp_ip_address": args.gateway,
            "dhcp_lan_netmask": args.netmask,
            "dhcp_start_ip_address": args.start,
            "dhcp_end_ip_address": args.end,
            "dhcp_lease_time": str(args.lease) if args.lease else None,
            "primary_dns": args.primary_dns,
            "secondary_dns": args.secondary_dns,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        if args.disable:
            values["dhcp_status"] = DhcpStatus.DISABLED
        elif args.enable:
            values["dhcp_status"] = DhcpStatus.ENABLED
        await client.dhcp.set_settings(DhcpSettingsRequest(**values))
        print_result("DHCP settings updated", args.format)


async def cmd_mock(args):
    """Serve a mock device locally until interrupted."""
    from .mock import MockDevice

    device = MockDevice(username=args.mock_username, password=args.mock_password)
    device.add_message("+15550100", "Welcome to the mock HiLink device")
    runner = await device.serve(args.host, args.port)
    console.print(f"[bold]Mock device on http://{args.host}:{args.port}[/bold] "
                  f"(login {args.mock_username}/{args.mock_password}, Ctrl+C to stop)")
    try:
        await asyncio.Event().wait()
    finally:
        await runner.cleanup()


async def run_device_command(command, args):
    config = build_config(args)
    async with HiLinkClient(config.device) as client:
        await ensure_login(client)
        try:
            await command(client, args)
        finally:
            if client.is_authenticated and not args.keep_session:
                await client.logout()


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="HiLink LTE router CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    parser.add_argument("--url", help="Device base URL (default http://192.168.8.1)")
    parser.add_argument("--config", "-c", help="YAML configuration file")
    parser.add_argument("--timeout", type=float, help="Request timeout in seconds")
    parser.add_argument("--retries", type=int, help="Maximum attempts for transient failures")
    parser.add_argument("--username", "-u", help="Device username (or HILINK_USERNAME)")
    parser.add_argument("--password", "-p", help="Device password (or HILINK_PASSWORD)")
    parser.add_argument("--format", "-f", choices=["table", "json", "yaml"], default="table",
                        help="Output format")
    parser.add_argument("--keep-session", action="store_true", help="Do not log out when done")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    subparsers.add_parser("info", help="Get device information")
    subparsers.add_parser("status", help="Connection and signal status")

    reboot_parser = subparsers.add_parser("reboot", help="Reboot device")
    reboot_parser.add_argument("--yes", "-y", action="store_true", help="Skip confirmation")

    # SMS commands
    sms_parser = subparsers.add_parser("sms", help="Read, send and delete SMS")
    sms_sub = sms_parser.add_subparsers(dest="sms_command", required=True)
    sms_sub.add_parser("count", help="Message counters")
    list_parser = sms_sub.add_parser("list", help="List messages")
    list_parser.add_argument("--box", type=int, default=1, choices=range(1, 7),
                             help="1 inbox, 2 outbox, 3 drafts, 4-6 SIM boxes")
    list_parser.add_argument("--page", type=int, default=1, help="Page number")
    list_parser.add_argument("--count", type=int, default=20, help="Messages per page (max 50)")
    list_parser.add_argument("--unread-first", action="store_true", help="Show unread messages first")
    send_parser = sms_sub.add_parser("send", help="Send a message")
    send_parser.add_argument("phones", nargs="+", help="Recipient phone number(s)")
    send_parser.add_argument("content", help="Message text")
    delete_parser = sms_sub.add_parser("delete", help="Delete a message")
    delete_parser.add_argument("index", help="Message index")
    read_parser = sms_sub.add_parser("read", help="Mark a message as read")
    read_parser.add_argument("index", help="Message index")

    # Network commands
    network_parser = subparsers.add_parser("network", help="Network mode and operator")
    network_sub = network_parser.add_subparsers(dest="network_command", required=True)
    network_sub.add_parser("mode", help="Show network mode")
    set_mode_parser = network_sub.add_parser("set-mode", help="Change network mode")
    set_mode_parser.add_argument("mode", choices=sorted(NETWORK_MODES), help="Network mode")
    network_sub.add_parser("operator", help="Show current operator")

    # DHCP commands
    dhcp_parser = subparsers.add_parser("dhcp", help="LAN DHCP settings")
    dhcp_sub = dhcp_parser.add_subparsers(dest="dhcp_command", required=True)
    dhcp_sub.add_parser("show", help="Show DHCP settings")
    dhcp_set = dhcp_sub.add_parser("set", help="Change DHCP settings")
    dhcp_set.add_argument("--gateway", help="Router LAN address")
    dhcp_set.add_argument("--netmask", help="LAN netmask")
    dhcp_set.add_argument("--start", help="First address of the DHCP range")
    dhcp_set.add_argument("--end", help="Last address of the DHCP range")
    dhcp_set.add_argument("--lease", type=int, help="Lease time in seconds")
    dhcp_set.add_argument("--primary-dns", help="Primary DNS server")
    dhcp_set.add_argument("--secondary-dns", help="Secondary DNS server")
    toggle = dhcp_set.add_mutually_exclusive_group()
    toggle.add_argument("--enable", action="store_true", help="Enable the DHCP server")
    toggle.add_argument("--disable", action="store_true", help="Disable the DHCP server")

    # Mock device
    mock_parser = subparsers.add_parser("mock", help="Serve a mock device for local testing")
    mock_parser.add_argument("--host", default="127.0.0.1", help="Listen address")
    mock_parser.add_argument("--port", type=int, default=8080, help="Listen port")
    mock_parser.add_argument("--mock-username", default="admin", help="Accepted username")
    mock_parser.add_argument("--mock-password", default="admin", help="Accepted password")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    logging_config = LoggingConfig()
    if args.config and Path(args.config).exists():
        logging_config = load_config(args.config).logging
    setup_logging(logging_config.level, logging_config.file, verbose=args.verbose)

    # Map commands to functions
    commands = {
        "info": cmd_info,
        "status": cmd_status,
        "reboot": cmd_reboot,
        "sms": cmd_sms,
        "network": cmd_network,
        "dhcp": cmd_dhcp,
    }

    try:
        if args.command == "mock":
            asyncio.run(cmd_mock(args))
        else:
            asyncio.run(run_device_command(commands[args.command], args))
    except KeyboardInterrupt:
        console.print("\n[dim]Interrupted[/dim]")
        sys.exit(130)
    except ClientError as e:
        console.print(f"[red]Error ({e.kind.value}): {e}[/red]")
        if args.verbose:
            console.print_exception()
        sys.exit(1)


if __name__ == "__main__":
    main()
