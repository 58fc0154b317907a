"""
Service wiring

Builds the store, sink, directory, router, aggregator and scheduler from one
Settings instance. Entry points (web server, CLI) call `build_services` once
and pass the container around; nothing here is a module-level singleton.
"""

import logging
from dataclasses import dataclass
from functools import partial
from typing import Optional

from slack_sdk.web.async_client import AsyncWebClient

from database import StatusItemDatabase
from interfaces.slack.services.notification_service import SlackNotificationService
from interfaces.slack.services.user_service import SlackUserService
from models import RoutingConfiguration
from runtime.daily_scrum import remind_daily_scrum
from runtime.digest_aggregator import DigestAggregator
from runtime.fanout_router import FanoutRouter
from runtime.routing_config import load_routing_config
from runtime.scheduler import DailyScheduler
from runtime.settings import Settings

logger = logging.getLogger(__name__)

DIGEST_JOB = "digest"
DAILYSCRUM_JOB = "dailyscrum"


@dataclass
class StatusBotServices:
    settings: Settings
    store: StatusItemDatabase
    sink: SlackNotificationService
    directory: SlackUserService
    routing: RoutingConfiguration
    digest_routing: RoutingConfiguration
    router: FanoutRouter
    aggregator: DigestAggregator
    scheduler: DailyScheduler

    async def start(self):
        await self.store.initialize()
        await self.scheduler.start()

    async def stop(self):
        await self.scheduler.stop()
        await self.store.close()


def register_jobs(services: StatusBotServices) -> None:
    """Digest job always; daily scrum reminder only when configured"""
    settings = services.settings
    services.scheduler.every_day_at(settings.digest_time, DIGEST_JOB, services.aggregator.run)

    if settings.dailyscrum_enabled:
        services.scheduler.every_day_at(
            settings.dailyscrum_time,
            DAILYSCRUM_JOB,
            partial(
                remind_daily_scrum,
                services.sink,
                settings.bot_token,
                settings.dailyscrum_channel,
                settings.dailyscrum_url,
                icon_url=settings.bot_icon_url,
                display_name=settings.bot_name,
            ),
        )


def build_services(settings: Settings, routing: Optional[RoutingConfiguration] = None,
                   digest_routing: Optional[RoutingConfiguration] = None,
                   store: Optional[StatusItemDatabase] = None,
                   sink: Optional[SlackNotificationService] = None,
                   directory: Optional[SlackUserService] = None) -> StatusBotServices:
    """
    Assemble every component. Raises ConfigurationFailure if a routing
    descriptor is missing or malformed.
    """
    if routing is None:
        routing = load_routing_config(settings.routing_config_path)
    if digest_routing is None:
        digest_path = settings.effective_digest_config_path
        if digest_path == settings.routing_config_path:
            digest_routing = routing
        else:
            digest_routing = load_routing_config(digest_path)

    store = store or StatusItemDatabase(db_path=settings.sqlite_path, db_url=settings.database_url)
    sink = sink or SlackNotificationService(
        default_icon_url=settings.bot_icon_url,
        default_display_name=settings.bot_name,
    )
    directory = directory or SlackUserService(AsyncWebClient(token=settings.bot_token))

    router = FanoutRouter(
        store,
        sink,
        routing,
        primary_destination=settings.working_channel,
        primary_credential=settings.bot_token,
        icon_url=settings.bot_icon_url,
        display_name=settings.bot_name,
    )
    aggregator = DigestAggregator(
        store,
        sink,
        directory,
        digest_routing,
        icon_url=settings.bot_icon_url,
        display_name=settings.bot_name,
        display_timezone=settings.digest_timezone,
    )
    scheduler = DailyScheduler(timezone=settings.schedule_timezone)

    services = StatusBotServices(
        settings=settings,
        store=store,
        sink=sink,
        directory=directory,
        routing=routing,
        digest_routing=digest_routing,
        router=router,
        aggregator=aggregator,
        scheduler=scheduler,
    )
    register_jobs(services)
    logger.info(
        f"Services ready: {len(routing.items)} fan-out rules, "
        f"{len(digest_routing.items)} digest rules, jobs={list(scheduler.jobs)}"
    )
    return services
