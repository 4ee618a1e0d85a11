"""CLI main entry point."""

import sys

import boto3
import click

from . import __version__
from .bootstrap import (
    ArtifactStore,
    BootstrapOrchestrator,
    BootstrapResult,
    InstanceMetadataClient,
    MembershipView,
    Provisioner,
    ReadinessProbe,
    WorkerBootstrap,
)
from .config import K8sInitConfig, load_config
from .errors import BootstrapError, IdentityError
from .shared.logging import configure_logging, get_logger
from .shared.paths import admin_kubeconfig

logger = get_logger(__name__)

LOG_LEVELS = ["info", "debug"]


@click.group()
@click.option("-c", "--config", "config_path", type=click.Path(), help="Config file path")
@click.option("-n", "--name", "endpoint", default=None, help="Address of the Kubernetes API Server")
@click.option("-p", "--port", type=int, default=None, help="Port of the Kubernetes API Server")
@click.option("-b", "--bucket", default=None, help="S3 bucket for the Kubernetes config")
@click.option("-v", "--verbose", count=True, help="Increase verbosity")
@click.option("--json-logs", is_flag=True, help="Log as JSON lines")
@click.option("--log-file", type=click.Path(), default=None, help="Also log to this file")
@click.version_option(__version__, prog_name="k8sinit")
@click.pass_context
def cli(
    ctx: click.Context,
    config_path: str | None,
    endpoint: str | None,
    port: int | None,
    bucket: str | None,
    verbose: int,
    json_logs: bool,
    log_file: str | None,
) -> None:
    """Initialize a Kubernetes HA cluster using kubeadm on AWS."""
    configure_logging(
        level=LOG_LEVELS[min(verbose, len(LOG_LEVELS) - 1)],
        log_file=log_file,
        json_output=json_logs,
    )
    try:
        config = load_config(
            config_path,
            overrides={"endpoint": endpoint, "port": port, "bucket": bucket},
        )
    except ValueError as e:
        raise click.UsageError(str(e)) from e

    ctx.ensure_object(dict)
    ctx.obj["config"] = config


def _require(config: K8sInitConfig) -> None:
    missing = config.missing_required()
    if missing:
        raise click.UsageError(f"Missing required setting(s): {', '.join(missing)} (use --name / --bucket)")


def _probe(config: K8sInitConfig) -> ReadinessProbe:
    return ReadinessProbe(attempts=config.probe_attempts, delay_seconds=config.probe_delay)


def _region(config: K8sInitConfig, metadata: InstanceMetadataClient) -> str:
    if config.region:
        return config.region
    region = metadata.identity_document().get("region")
    if not region:
        raise IdentityError(message="Instance identity document has no region")
    logger.info("got the region", region=region)
    return region


def _exit_with(result: BootstrapResult) -> None:
    if not result.success:
        click.echo(f"Error: {result.error}", err=True)
        sys.exit(1)


@cli.command()
@click.pass_context
def controller(ctx: click.Context) -> None:
    """Deploy a HA controller.

    Initializes the cluster if this node is the designated leader of its
    auto scaling group, otherwise joins it as a control plane node.
    """
    config: K8sInitConfig = ctx.obj["config"]
    _require(config)
    logger.info("start provisioning of the controller", endpoint=config.endpoint, bucket=config.bucket)

    metadata = InstanceMetadataClient()
    try:
        region = _region(config, metadata)
    except BootstrapError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    membership = MembershipView(
        metadata,
        boto3.client("autoscaling", region_name=region),
        poll_interval=config.capacity_poll_interval,
    )
    orchestrator = BootstrapOrchestrator(
        endpoint=config.cluster_endpoint(),
        membership=membership,
        probe=_probe(config),
        store=ArtifactStore(boto3.client("s3", region_name=region), config.bucket),
        provisioner=Provisioner(admin_conf=admin_kubeconfig(config.kubernetes_dir)),
        pki=config.pki_artifacts(),
        cluster_config=config.cluster_config_artifacts(),
        capacity_timeout=config.capacity_timeout,
        probe_interval=config.probe_interval,
    )
    _exit_with(orchestrator.run())


@cli.command()
@click.pass_context
def worker(ctx: click.Context) -> None:
    """Join a worker once the control plane is up."""
    config: K8sInitConfig = ctx.obj["config"]
    _require(config)
    logger.info("start provisioning of the worker", endpoint=config.endpoint, bucket=config.bucket)

    try:
        region = _region(config, InstanceMetadataClient())
    except BootstrapError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    bootstrap = WorkerBootstrap(
        endpoint=config.cluster_endpoint(),
        probe=_probe(config),
        store=ArtifactStore(boto3.client("s3", region_name=region), config.bucket),
        provisioner=Provisioner(admin_conf=admin_kubeconfig(config.kubernetes_dir)),
        cluster_config=config.cluster_config_artifacts(),
        probe_interval=config.probe_interval,
    )
    _exit_with(bootstrap.run())


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
