"""
karo CLI - React to Alertmanager alerts by creating Kubernetes Jobs.

Commands:
    karo serve                Run the Alertmanager webhook server
    karo operator             Run the AlertReaction operator (kopf)
    karo match                Dry run: print the Jobs an alert would create
    karo alertmanager-config  Print an example Alertmanager receiver config
"""

from __future__ import annotations

import shutil
import subprocess
import sys
from pathlib import Path
from typing import Any, List, Optional, Tuple

import click
import yaml

from karo.alert import AlertPayload, AlertmanagerWebhook
from karo.config import get_config
from karo.dispatcher import AlertDispatcher
from karo.engine import build_processor
from karo.logger import ReactionLogger, configure_logging
from karo.metrics import ReactionMetrics
from karo.server import WebhookServer, alertmanager_config_yaml
from karo.storage import FileBackend, backend_from_config
from karo.storage.file import to_manifest


@click.group()
@click.version_option(package_name="karo")
def main():
    """karo - Alert-triggered Kubernetes Jobs."""
    pass


@main.command()
@click.option("--host", default=None, help="Address to bind (default: KARO_WEBHOOK_HOST)")
@click.option("--port", type=int, default=None, help="Port to listen on (default: KARO_WEBHOOK_PORT)")
@click.option("--namespace", default=None, help="Only consider AlertReactions in this namespace")
@click.option("--debug", is_flag=True, help="Enable Flask debug mode")
def serve(host: Optional[str], port: Optional[int], namespace: Optional[str], debug: bool):
    """Run the Alertmanager webhook server."""
    overrides = {k: v for k, v in (("webhook_host", host), ("webhook_port", port), ("namespace", namespace)) if v}
    config = get_config(**overrides)
    configure_logging(config.log_level, config.log_format)

    backend = backend_from_config(config)
    processor = build_processor(
        backend,
        ttl_seconds_after_finished=config.job_ttl_seconds,
        max_workers=config.max_workers,
        synthesis_timeout_s=config.synthesis_timeout_s,
    )
    dispatcher = AlertDispatcher(
        processor,
        job_sink=backend,
        status_sink=backend,
        events=ReactionLogger(service_name=config.service_name),
        metrics=ReactionMetrics(service_name=config.service_name, console=config.metrics_enabled),
    )

    server = WebhookServer(
        dispatcher,
        port=config.webhook_port,
        host=config.webhook_host,
        service_name=config.service_name,
    )
    server.run(debug=debug)


@main.command()
@click.option("--kubeconfig", envvar="KUBECONFIG", help="Path to kubeconfig")
@click.option("--namespace", default="", help="Namespace to watch (empty for all)")
def operator(kubeconfig: Optional[str], namespace: str):
    """Run the AlertReaction operator locally."""
    click.echo("Starting karo operator...")
    click.echo(f"  kubeconfig: {kubeconfig or 'in-cluster'}")
    click.echo(f"  namespace: {namespace or 'all'}")

    if not shutil.which("kopf"):
        raise click.ClickException(
            "kopf not found in PATH.\n"
            "Install with: pip install kopf"
        )

    cmd = ["kopf", "run", "-m", "karo.operator", "--verbose"]
    if namespace:
        cmd.extend(["--namespace", namespace])
    else:
        cmd.append("--all-namespaces")

    click.echo(f"  Running: {' '.join(cmd)}")

    try:
        result = subprocess.run(cmd)
    except FileNotFoundError:
        raise click.ClickException("kopf executable not found.\nInstall with: pip install kopf")

    if result.returncode != 0:
        raise click.ClickException(
            f"Operator exited with error.\n"
            f"Exit code: {result.returncode}\n"
            f"Command: {' '.join(cmd)}"
        )


def _load_alerts(path: Path, alert_name: Optional[str]) -> List[Tuple[str, AlertPayload]]:
    """
    Read alerts from a JSON or YAML file.

    Accepts an Alertmanager webhook body (every firing alert is used) or a
    single alert record.
    """
    with open(path, "r", encoding="utf-8") as f:
        data: Any = yaml.safe_load(f)

    if not isinstance(data, dict):
        raise click.ClickException(f"{path}: expected a JSON/YAML object")

    try:
        if isinstance(data.get("alerts"), list):
            webhook = AlertmanagerWebhook.from_json(data)
            payloads = [AlertPayload.from_alertmanager_alert(a) for a in webhook]
            payloads = [p for p in payloads if p.is_firing]
        else:
            payloads = [AlertPayload.from_dict(data)]
    except ValueError as e:
        raise click.ClickException(f"{path}: {e}")

    alerts = []
    for payload in payloads:
        name = alert_name or payload.alert_name
        if not name:
            raise click.ClickException(f"{path}: alert has no alertname label; pass --alert-name")
        alerts.append((name, payload))
    return alerts


@main.command()
@click.option("--rules", "rules_path", required=True, type=click.Path(exists=True, path_type=Path),
              help="AlertReaction manifest file or directory (ConfigMaps/Secrets may sit alongside)")
@click.option("--alert", "alert_path", required=True, type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="Alert JSON/YAML (single alert or Alertmanager webhook body)")
@click.option("--alert-name", default=None, help="Alert name (default: the alertname label)")
def match(rules_path: Path, alert_path: Path, alert_name: Optional[str]):
    """Dry run: print the Jobs an alert would create, without submitting them."""
    backend = FileBackend(rules_path=str(rules_path))
    processor = build_processor(backend, ttl_seconds_after_finished=get_config().job_ttl_seconds)

    documents = []
    failures = 0
    for name, payload in _load_alerts(alert_path, alert_name):
        result = processor.process_alert(name, payload)
        if not result.matched:
            click.echo(f"# alert {name}: no matching AlertReaction", err=True)
        for outcome in result.outcomes:
            if outcome.ok:
                documents.append(to_manifest(outcome.job))
            else:
                failures += 1
                click.echo(
                    f"# alert {name}: action {outcome.action_name} "
                    f"(AlertReaction {outcome.rule.name}) failed: {outcome.error}",
                    err=True,
                )

    if documents:
        click.echo(yaml.safe_dump_all(documents, default_flow_style=False, sort_keys=False), nl=False)

    if failures and not documents:
        sys.exit(1)


@main.command("alertmanager-config")
@click.option("--base-url", default=None, help="Externally reachable base URL of the webhook server")
@click.option("--receiver", default="karo", help="Receiver name")
def alertmanager_config(base_url: Optional[str], receiver: str):
    """Print an example Alertmanager configuration pointing at karo."""
    if base_url is None:
        config = get_config()
        base_url = f"http://karo.{config.namespace or 'default'}.svc:{config.webhook_port}"
    click.echo(alertmanager_config_yaml(base_url, receiver), nl=False)


if __name__ == "__main__":
    main()
