"""Cloud Mail setup entrypoint for monitoring alert mail.

Provisions a project domain, the alert address set, the sender and the
bounce-drop receipt rule, then sends a test message when a recipient is
configured.
"""

import asyncio
import sys
import time
from typing import Optional

import structlog
from prometheus_client import push_to_gateway

from infrakit.cloudmail.client import MailClient
from infrakit.common.config import InfrakitSettings, get_settings
from infrakit.common.logging import configure_logging
from infrakit.common.metrics import ClientMetrics, get_metrics

logger = structlog.get_logger()


class MailSetup:
    """Runs the provisioning steps in order and reports an exit code."""

    def __init__(
        self,
        settings: InfrakitSettings,
        client: Optional[MailClient] = None,
        metrics: Optional[ClientMetrics] = None,
    ):
        self.settings = settings
        self.metrics = metrics or get_metrics()
        self.client = client or MailClient.from_settings(settings, metrics=self.metrics)

    async def run(self) -> int:
        """Execute provisioning; return 0 on success and 1 on failure."""
        start_time = time.time()

        try:
            logger.info("Starting Cloud Mail setup", project_id=self.client.project_id)

            async with self.client as mail:
                domain_id = await mail.create_domain()
                await mail.create_address_set(domain_id)
                await mail.create_sender(domain_id)
                await mail.create_and_apply_receipt_rule_drop(domain_id)

                recipient = self.settings.cloudmail_test_recipient
                if recipient:
                    domains = await mail.list_domains()
                    domain_name = next(
                        (
                            d.domain_name
                            for d in domains
                            if d.name and mail.domain_id_from_name(d.name) == domain_id
                        ),
                        None,
                    )
                    if domain_name:
                        await mail.send_test_message(domain_name, recipient)
                    else:
                        logger.warning("Created domain not listed, skipping test message",
                                       domain_id=domain_id)

            logger.info("Cloud Mail setup completed",
                        domain_id=domain_id,
                        execution_time=time.time() - start_time)
            return 0

        except Exception as e:
            logger.error("Cloud Mail setup failed", error=str(e), exc_info=True)
            return 1

        finally:
            self._push_metrics()

    def _push_metrics(self) -> None:
        """Push metrics to Prometheus gateway if configured."""
        gateway_url = self.settings.prometheus_gateway_url
        if gateway_url:
            try:
                push_to_gateway(gateway_url, job="infrakit-mail-setup",
                                registry=self.metrics.registry)
                logger.debug("Metrics pushed to gateway", gateway_url=gateway_url)
            except Exception as e:
                logger.warning("Failed to push metrics", error=str(e))


async def main() -> int:
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_json)
    return await MailSetup(settings).run()


def run() -> None:
    """Console script entrypoint."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
