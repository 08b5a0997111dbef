"""
Engine wiring.

Every service is constructed here and handed its collaborators explicitly;
nothing reads module-level state.
"""

from dataclasses import dataclass

from chatly_engine.config import Settings, load_settings
from chatly_engine.infrastructure.observability.logging import get_logger
from chatly_engine.infrastructure.providers import (
    BatteryProvider,
    Clock,
    StaticBattery,
    SystemClock,
)
from chatly_engine.infrastructure.store.protocol import DocumentStore
from chatly_engine.repositories.chat_repository import ChatRepository
from chatly_engine.services.encryption.envelope import EnvelopeEncryptor
from chatly_engine.services.gateway.cache_gateway import CacheGateway
from chatly_engine.services.messaging.send_message import SendMessagePipeline
from chatly_engine.services.moderation.reports import ReportLedger
from chatly_engine.services.moderation.screening import ModerationService
from chatly_engine.services.moderation.toxicity_client import (
    PerspectiveToxicityClient,
    ToxicityClassifier,
)
from chatly_engine.services.scoring.contact_ranking import ContactRankingService
from chatly_engine.services.scoring.conversation_health import ConversationHealthScorer
from chatly_engine.services.scoring.notification_timing import (
    ActivityProvider,
    NotificationTimingPredictor,
)

logger = get_logger(__name__)


@dataclass(slots=True)
class Engine:
    settings: Settings
    gateway: CacheGateway
    repository: ChatRepository
    moderation: ModerationService
    reports: ReportLedger
    health: ConversationHealthScorer
    ranking: ContactRankingService
    notifications: NotificationTimingPredictor
    send_message: SendMessagePipeline


def build_engine(
    store: DocumentStore,
    settings: Settings | None = None,
    classifier: ToxicityClassifier | None = None,
    encryptor: EnvelopeEncryptor | None = None,
    clock: Clock | None = None,
    battery: BatteryProvider | None = None,
    activity: ActivityProvider | None = None,
) -> Engine:
    """
    Construct a fully wired engine around a document store.

    A Perspective classifier is created when no classifier is passed and an
    API key is configured; otherwise moderation runs on the local heuristic.
    """
    settings = settings or load_settings()
    clock = clock or SystemClock()
    battery = battery or StaticBattery()

    if classifier is None and settings.moderation.perspective_api_key:
        classifier = PerspectiveToxicityClient(settings.moderation)

    gateway = CacheGateway(store, settings.cache, settings.admission, clock=clock)
    repository = ChatRepository(gateway)
    moderation = ModerationService(settings.moderation, classifier=classifier)
    reports = ReportLedger(gateway, clock=clock, thresholds=settings.bans)
    health = ConversationHealthScorer(settings.scoring)
    ranking = ContactRankingService(
        repository, clock=clock, message_limit=settings.messaging.recent_message_limit
    )
    notifications = NotificationTimingPredictor(
        battery, activity=activity, clock=clock, settings=settings.notifications
    )
    send_message = SendMessagePipeline(
        repository,
        moderation,
        health,
        ranking,
        notifications,
        encryptor=encryptor,
        clock=clock,
        settings=settings.messaging,
    )

    logger.info(
        "Engine initialized",
        environment=settings.environment,
        admission_capacity=settings.admission.capacity,
        admission_overflow=settings.admission.overflow,
        classifier=type(classifier).__name__ if classifier else "heuristic",
        encryption=encryptor is not None,
    )
    return Engine(
        settings=settings,
        gateway=gateway,
        repository=repository,
        moderation=moderation,
        reports=reports,
        health=health,
        ranking=ranking,
        notifications=notifications,
        send_message=send_message,
    )
