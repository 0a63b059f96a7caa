"""Prompt composer: builds provider messages for one customer turn."""

import logging
from typing import List, Optional

from llm.base_client import Message
from memory.models import ConversationContext, Role
from schemas.context import Classification, Intent, Emotion
from schemas.knowledge import KnowledgeItem
from schemas.personality import PersonalityProfile, Tone

logger = logging.getLogger(__name__)


class PromptComposer:
    """
    Composes the system prompt and chat history sent to a provider.

    The prompt carries the tenant's business facts, the conversation summary
    and preferences, and guidance for the detected intent and emotion. Tone
    is only hinted at here; the personality engine enforces it afterwards.
    """

    BASE_SYSTEM_PROMPT = """You are a customer service assistant replying to customers of a business over WhatsApp.

## Response Standards
1. Answer the customer's latest message directly
2. Only state business facts that appear in the Business Information section
3. If the information is not available, say so and offer to connect the customer with the team
4. Keep replies short enough to read comfortably on a phone
5. Do not invent order numbers, prices, or delivery dates"""

    TONE_PROMPTS = {
        Tone.PROFESSIONAL: "Write in a polite, professional register.",
        Tone.FRIENDLY: "Write warmly, like a helpful friend who works at the business.",
        Tone.EXPERT: "Write as a knowledgeable specialist and be precise.",
        Tone.CARING: "Write gently and show that you care about the customer's situation.",
        Tone.TRENDY: "Write in a light, upbeat, modern style.",
    }

    INTENT_GUIDANCE = {
        Intent.ORDER_STATUS: "The customer is asking about an order. Explain what you know and the next step to check its status.",
        Intent.COMPLAINT: "The customer has a complaint. Acknowledge the problem and propose a concrete next step.",
        Intent.BOOKING: "The customer wants to book or schedule. Confirm what is needed to make the booking.",
        Intent.PRODUCT_INQUIRY: "The customer is asking about products or services. Use the business information.",
        Intent.HELP: "The customer needs help. Give clear, step-by-step guidance.",
        Intent.GREETING: "The customer is greeting you. Greet back and ask how you can help.",
        Intent.GOODBYE: "The customer is ending the conversation. Close politely.",
        Intent.APPRECIATION: "The customer is thanking you. Respond graciously.",
    }

    EMOTION_GUIDANCE = {
        Emotion.ANGRY: "The customer seems frustrated. Stay calm and solution-focused.",
        Emotion.SAD: "The customer seems upset. Be gentle and supportive.",
        Emotion.WORRIED: "The customer seems worried. Be reassuring and specific.",
        Emotion.EXCITED: "The customer is excited. Match their energy.",
        Emotion.HAPPY: "The customer is in a good mood. Keep it positive.",
    }

    def __init__(self, history_turns: int = 10):
        """
        Initialize composer.

        Args:
            history_turns: Most recent turns included verbatim
        """
        self.history_turns = history_turns

    def compose(
        self,
        message: str,
        context: ConversationContext,
        classification: Classification,
        knowledge: List[KnowledgeItem],
        profile: PersonalityProfile
    ) -> List[Message]:
        """
        Build provider messages for one turn.

        Args:
            message: Normalized customer message
            context: Conversation context loaded before this turn
            classification: Intent and emotion of the message
            knowledge: Business facts relevant to the message
            profile: Tenant profile snapshot

        Returns:
            System message, recent history and the current message
        """
        messages = [Message(role="system", content=self._build_system_prompt(context, classification, knowledge, profile))]

        for turn in context.turns[-self.history_turns:]:
            role = "user" if turn.role == Role.CUSTOMER else "assistant"
            messages.append(Message(role=role, content=turn.text))

        messages.append(Message(role="user", content=message))
        logger.debug(
            f"Composed {len(messages)} messages for {context.tenant_id}:{context.conversation_id} "
            f"({len(knowledge)} facts)"
        )
        return messages

    def _build_system_prompt(
        self,
        context: ConversationContext,
        classification: Classification,
        knowledge: List[KnowledgeItem],
        profile: PersonalityProfile
    ) -> str:
        """Build system prompt with business facts and conversation memory."""
        parts = [self.BASE_SYSTEM_PROMPT, "", "## Voice", self.TONE_PROMPTS[profile.tone]]
        if profile.custom_instructions:
            parts.append(profile.custom_instructions)
        parts.append(f"Reply in the language with code '{profile.language}'.")

        parts.extend(["", "## Business Information"])
        if knowledge:
            parts.extend(f"- {item.as_fact()}" for item in knowledge)
        else:
            parts.append("No business information matched this message.")

        memory = self._format_memory(context)
        if memory:
            parts.extend(["", "## Conversation So Far", memory])

        guidance = [
            g for g in (
                self.INTENT_GUIDANCE.get(classification.intent),
                self.EMOTION_GUIDANCE.get(classification.emotion),
            ) if g
        ]
        if guidance:
            parts.extend(["", "## This Message"])
            parts.extend(guidance)

        return "\n".join(parts)

    @staticmethod
    def _format_memory(context: ConversationContext) -> Optional[str]:
        lines = []
        if not context.summary.is_empty():
            lines.append(f"Earlier: {context.summary.text}")
            if context.summary.key_topics:
                lines.append(f"Topics: {', '.join(context.summary.key_topics)}")
        if context.preferences:
            prefs = ", ".join(f"{k}={v}" for k, v in sorted(context.preferences.items()))
            lines.append(f"Customer preferences: {prefs}")
        return "\n".join(lines) if lines else None
