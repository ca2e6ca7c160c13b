"""LinkedIn reply adapter.

LinkedIn offers no messaging API to regular apps, so this adapter only
acknowledges the reply with a synthetic message id. It exists so LinkedIn
flows run end to end and record their steps.
"""

from datetime import datetime

from echodesk_core.observability import get_logger
from echodesk_core.providers.base import PlatformAdapter, ReplyContext, SendReplyResult

logger = get_logger(__name__)


class LinkedInAdapter(PlatformAdapter):
    """Placeholder LinkedIn adapter."""

    platform = "LinkedIn"

    async def _deliver(self, context: ReplyContext) -> SendReplyResult:
        logger.info(
            "LinkedIn reply recorded without delivery",
            execution_id=context.execution_id,
            step_number=context.step_number,
        )
        return SendReplyResult.ok(
            f"linkedin_auto_reply_{int(datetime.now().timestamp() * 1000)}"
        )
