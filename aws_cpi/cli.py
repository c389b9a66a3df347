from json import loads

from click import BadParameter, argument, echo, group, option, secho

from aws_cpi.cloud import Cloud
from aws_cpi.errors import CpiError
from aws_cpi.logging import configure_logging
from aws_cpi.settings import Settings


def parse_json(ctx, param, value):
    if value is None:
        return None
    try:
        return loads(value)
    except ValueError as e:
        raise BadParameter(f"Invalid json: {e}")


@group()
@option("--log-level", type=str, default="INFO")
def cli(log_level):
    configure_logging(log_level.upper())


@cli.command("create-vm")
@option("--agent-id", type=str, required=True)
@option("--stemcell-id", type=str, required=True)
@option("--resource-pool", type=str, callback=parse_json, default="{}")
@option("--networks", type=str, callback=parse_json, default="{}")
@option("--disk-locality", type=str, callback=parse_json, default=None)
@option("--env", "environment", type=str, callback=parse_json, default=None)
def create_vm(agent_id, stemcell_id, resource_pool, networks, disk_locality, environment):
    cloud = Cloud(Settings())

    secho(f"Creating VM for agent `{agent_id}`...", fg="yellow", err=True)
    try:
        instance_id = cloud.create_vm(
            agent_id,
            stemcell_id,
            resource_pool,
            networks,
            disk_locality=disk_locality,
            environment=environment,
        )
    except CpiError as e:
        secho(f"Failed to create VM: {e}", fg="red", err=True)
        raise SystemExit(1)

    secho(f"Finished creating `{instance_id}`", fg="green", err=True)
    echo(instance_id)


@cli.command("delete-vm")
@argument("instance_id")
def delete_vm(instance_id):
    cloud = Cloud(Settings())

    secho(f"Deleting `{instance_id}`...", fg="yellow", err=True)
    try:
        cloud.delete_vm(instance_id)
    except CpiError as e:
        secho(f"Failed to delete VM: {e}", fg="red", err=True)
        raise SystemExit(1)
    secho(f"Finished deleting `{instance_id}`", fg="green", err=True)


@cli.command("has-vm")
@argument("instance_id")
def has_vm(instance_id):
    cloud = Cloud(Settings())
    echo("true" if cloud.has_vm(instance_id) else "false")
