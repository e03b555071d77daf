"""Notification content and platform options for each category.

Routes are the client's deep-link convention and must not change.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from ..models import NotificationCategory


@dataclass
class NotificationContent:
    """Visible title and body of a push notification."""
    title: str
    body: str


@dataclass
class PlatformOverrides:
    """Per-platform delivery options applied to every chunk of a dispatch."""
    android_channel_id: str = "default"
    android_priority: str = "high"
    sound: str = "default"
    apns_badge: Optional[int] = 1
    web_icon: str = "/icon-192x192.png"
    web_badge: str = "/badge-72x72.png"
    web_tag: Optional[str] = None
    web_require_interaction: bool = False
    web_vibrate: List[int] = field(default_factory=lambda: [200, 100, 200])


@dataclass
class CategoryTemplate:
    """Everything needed to build a notification for one category."""
    category: NotificationCategory
    title: str
    body: str
    data_type: str
    route: str
    channel_id: str
    variant: Optional[str] = None
    require_interaction: bool = False

    def content(self) -> NotificationContent:
        return NotificationContent(title=self.title, body=self.body)

    def data(self, now: datetime) -> Dict[str, str]:
        """Data payload. FCM requires every value to be a string."""
        data = {
            "type": self.data_type,
            "route": self.route,
            "priority": "high",
            "timestamp": now.isoformat(),
        }
        if self.variant:
            data["variant"] = self.variant
        return data

    def overrides(self) -> PlatformOverrides:
        return PlatformOverrides(
            android_channel_id=self.channel_id,
            web_tag=self.data_type.replace("_", "-"),
            web_require_interaction=self.require_interaction,
        )


TEMPLATES: Dict[NotificationCategory, CategoryTemplate] = {
    NotificationCategory.MORNING_CHECK_IN: CategoryTemplate(
        category=NotificationCategory.MORNING_CHECK_IN,
        title="🌅 Bom dia! Como você está se sentindo?",
        body=(
            "É hora do seu questionário matinal. Compartilhe como foi sua noite "
            "e como está o seu dia começando."
        ),
        data_type="morning_quiz",
        route="/quiz",
        channel_id="quiz_reminders",
        variant="morning",
    ),
    NotificationCategory.EVENING_CHECK_IN: CategoryTemplate(
        category=NotificationCategory.EVENING_CHECK_IN,
        title="🌙 Boa noite! Como foi seu dia?",
        body=(
            "É hora do seu questionário noturno. Compartilhe como foi seu dia "
            "e como está se sentindo agora."
        ),
        data_type="evening_quiz",
        route="/quiz",
        channel_id="quiz_reminders",
        variant="evening",
    ),
    NotificationCategory.MEDICATION_REMINDER: CategoryTemplate(
        category=NotificationCategory.MEDICATION_REMINDER,
        title="💊 Hora do seu medicamento",
        body="Não esqueça de tomar sua dose e registrar no diário.",
        data_type="medication_reminder",
        route="/medications",
        channel_id="medication_reminders",
    ),
    NotificationCategory.HEALTH_INSIGHT: CategoryTemplate(
        category=NotificationCategory.HEALTH_INSIGHT,
        title="📊 Novo insight sobre sua saúde",
        body="Seu relatório está pronto. Veja o que mudou nos últimos dias.",
        data_type="health_insight",
        route="/reports",
        channel_id="health_insights",
    ),
    NotificationCategory.EMERGENCY_ALERT: CategoryTemplate(
        category=NotificationCategory.EMERGENCY_ALERT,
        title="🆘 Precisa de ajuda?",
        body="Percebemos sinais de crise. Toque para acessar seus contatos e orientações de emergência.",
        data_type="emergency_alert",
        route="/emergencia",
        channel_id="emergency_alerts",
        require_interaction=True,
    ),
}


def template_for(category: NotificationCategory) -> CategoryTemplate:
    return TEMPLATES[NotificationCategory(category)]
