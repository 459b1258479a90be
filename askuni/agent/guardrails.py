"""Assistant instructions and answer policy.

The assistant may only answer from the knowledge base. An answer that
comes back without a knowledge citation is replaced by a fixed message.
"""

import re

INSUFFICIENT_INFORMATION = (
    "**Answer**\n\n"
    "I don't have this information in my knowledge base.\n\n"
    "**Next Steps**\n"
    "- Please check SIS/UCS or upload the official document.\n"
    "- Make sure the information you're looking for is in the uploaded course materials."
)

OFFLINE_NOTICE = "ℹ️ Assistant is offline (missing API keys)."
OFFLINE_TEXT = "Assistant offline."

ATTACHMENTS_HEADER = "📎 Attached materials (extracted):"
ATTACHMENT_TEXT_LIMIT = 8000


def build_instructions(tenant_name: str) -> list[str]:
    """Instructions that keep the assistant on its knowledge base."""
    return [
        f'"UoB" always means "{tenant_name}".',
        "Only use the knowledge base search results as a source of truth. "
        "Never answer from general or pretraining knowledge.",
        "Search the knowledge base for every question. Try several phrasings, "
        'course codes written different ways (e.g. "ITCS285", "ITCS 285", "ITCS-285") '
        "and synonyms before giving up.",
        "If the knowledge base does not contain the answer, reply exactly: "
        "\"I don't have this information in my knowledge base. "
        'Please check SIS/UCS or upload the official document."',
        "Only state dates, times and rooms that appear explicitly in the documents. "
        "If documents disagree, say so and advise confirming in SIS/UCS.",
        "Format answers in Markdown with the sections **Answer**, **Overview**, "
        "**Key Details** and **Next Steps**. Use tables when listing sections or courses.",
    ]


def sanitize_identity(text: str, tenant_name: str) -> str:
    """Replace the institution the model most often confuses with ours."""
    return re.sub(r"\bUniversity of Birmingham\b", tenant_name, text or "", flags=re.IGNORECASE)


def build_prompt(message: str, attachments: list) -> str:
    """Fold attachment text and the user message into one prompt.

    Args:
        message: The user's message.
        attachments: Items with ``filename`` and ``text`` attributes.

    Returns:
        The unified prompt text.
    """
    blocks = [
        f"---\n{a.filename or f'attachment-{i + 1}'}\n{(a.text or '')[:ATTACHMENT_TEXT_LIMIT]}"
        for i, a in enumerate(attachments)
    ]
    if not blocks:
        return message
    return f"{ATTACHMENTS_HEADER}\n" + "\n".join(blocks) + f"\n\n{message}"
