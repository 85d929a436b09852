from unihost_core.services.base_service import BaseService
from unihost_core.services.users import UserService
from unihost_core.services.properties import PropertyService
from unihost_core.services.conversations import ConversationService, guest_email_for
from unihost_core.services.messages import MessageService
from unihost_core.services.suggestions import SuggestionService, build_context

__all__ = [
    "BaseService",
    "ConversationService",
    "MessageService",
    "PropertyService",
    "SuggestionService",
    "UserService",
    "build_context",
    "guest_email_for",
]
