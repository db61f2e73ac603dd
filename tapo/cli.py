"""python-tapo cli tool."""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import Any

import asyncclick as click

from tapo import (
    Client,
    Credentials,
    DeviceConfig,
    Discover,
    TapoException,
    detect_protocol,
)
from tapo.json import dumps as json_dumps
from tapo.json import loads as json_loads

pass_client = click.make_pass_decorator(Client)


def echo(*args, **kwargs) -> None:
    """Print a message unless json output was requested."""
    ctx = click.get_current_context().find_root()
    if not ctx.params.get("json"):
        click.echo(*args, **kwargs)


def _echo_json(data: Any) -> None:
    click.echo(json_dumps(data, indent=True))


@click.group(invoke_without_command=True)
@click.option(
    "--host",
    envvar="TAPO_HOST",
    required=False,
    help="The host name or IP address of the device to connect to.",
)
@click.option(
    "--port",
    envvar="TAPO_PORT",
    required=False,
    type=int,
    help="The port of the device to connect to.",
)
@click.option(
    "--https/--no-https",
    envvar="TAPO_HTTPS",
    default=False,
    is_flag=True,
    help="Connect to the device over https.",
)
@click.option(
    "--target",
    envvar="TAPO_TARGET",
    default=Discover.DEFAULT_TARGET,
    required=False,
    show_default=True,
    help="The broadcast address to be used for discovery.",
)
@click.option(
    "-d",
    "--debug",
    envvar="TAPO_DEBUG",
    default=False,
    is_flag=True,
    help="Print debug output",
)
@click.option(
    "--json/--no-json",
    envvar="TAPO_JSON",
    default=False,
    is_flag=True,
    help="Output raw device response as JSON.",
)
@click.option(
    "--timeout",
    envvar="TAPO_TIMEOUT",
    default=5,
    required=False,
    show_default=True,
    help="Timeout for device communications.",
)
@click.option(
    "--discovery-timeout",
    envvar="TAPO_DISCOVERY_TIMEOUT",
    default=5,
    required=False,
    show_default=True,
    help="Timeout for discovery.",
)
@click.option(
    "--username",
    default=None,
    required=False,
    envvar="TAPO_USERNAME",
    help="Username/email address to authenticate to device.",
)
@click.option(
    "--password",
    default=None,
    required=False,
    envvar="TAPO_PASSWORD",
    help="Password to use to authenticate to device.",
)
@click.option(
    "--credentials-hash",
    default=None,
    required=False,
    envvar="TAPO_CREDENTIALS_HASH",
    help="Hashed credentials used to authenticate to the device.",
)
@click.option(
    "--verify-signature/--no-verify-signature",
    envvar="TAPO_VERIFY_SIGNATURE",
    default=False,
    is_flag=True,
    help="Check the signature of device responses.",
)
@click.version_option(package_name="python-tapo")
@click.pass_context
async def cli(
    ctx,
    host,
    port,
    https,
    target,
    debug,
    json,
    timeout,
    discovery_timeout,
    username,
    password,
    credentials_hash,
    verify_signature,
):
    """A tool for controlling TP-Link Tapo smart plugs."""
    # no need to perform any checks if we are just displaying the help
    if "--help" in sys.argv:
        # Context object is required to avoid crashing on sub-groups
        ctx.obj = object()
        return

    logging.basicConfig(level=logging.DEBUG if debug else logging.INFO)

    if ctx.invoked_subcommand == "discover":
        return

    if bool(password) != bool(username):
        raise click.BadOptionUsage(
            "username", "Using authentication requires both --username and --password"
        )

    if host is None:
        echo("No host name given, trying discovery..")
        return await ctx.invoke(discover)

    credentials = Credentials(username, password) if username else None
    config = DeviceConfig(
        host=host,
        port_override=port,
        https=https,
        credentials=credentials,
        credentials_hash=credentials_hash,
        timeout=timeout,
        verify_signature=verify_signature,
    )

    @asynccontextmanager
    async def async_wrapped_client(client: Client):
        try:
            yield client
        finally:
            await client.close()

    ctx.obj = await ctx.with_async_resource(async_wrapped_client(Client(config=config)))

    if ctx.invoked_subcommand is None:
        return await ctx.invoke(state)


@cli.command()
@click.pass_context
async def discover(ctx):
    """Discover devices in the network."""
    target = ctx.parent.params["target"]
    discovery_timeout = ctx.parent.params["discovery_timeout"]

    echo(f"Discovering devices on {target} for {discovery_timeout} seconds")
    hosts = await Discover.discover(target=target, discovery_timeout=discovery_timeout)
    if ctx.parent.params["json"]:
        _echo_json(hosts)
    else:
        for host in hosts:
            echo(f"Found device at {host}")
        echo(f"Found {len(hosts)} devices")

    return hosts


@cli.command()
@pass_client
async def detect(client: Client):
    """Detect the protocol the device speaks."""
    variant = await detect_protocol(client.config)
    echo(f"{client.host} speaks {variant.value}")
    return variant


@cli.command()
@click.argument("method")
@click.argument("params", default=None, required=False)
@pass_client
async def command(client: Client, method: str, params: str | None):
    """Run a raw command on the device.

    PARAMS is an optional json object passed as the command parameters.
    """
    try:
        parsed_params = json_loads(params) if params else None
    except ValueError as ex:
        raise click.BadParameter(f"Invalid json: {ex}", param_hint="PARAMS") from ex

    try:
        res = await client.request(method, parsed_params)
    except TapoException as ex:
        click.echo(f"Got error: {ex!r}", err=True)
        sys.exit(1)

    _echo_json(res)
    return res


@cli.command()
@click.pass_context
async def state(ctx):
    """Print the device info."""
    return await ctx.invoke(command, method="get_device_info", params=None)


if __name__ == "__main__":
    cli()
