"""
Prompt builders for every gateway task.

Each builder is a pure function of the request payload; the same inputs always
produce the same prompt text.
"""
from typing import List, Optional

DEFAULT_SENTIMENT_CATEGORIES = ("positive", "negative", "neutral")

_DETAIL_INSTRUCTIONS = {
    "basic": "Keep descriptions brief and high-level.",
    "detailed": "Provide clear, actionable descriptions with moderate detail.",
    "comprehensive": (
        "Provide comprehensive, detailed descriptions for each step with specific implementation details."
    ),
}


def summarize_prompt(text: str, max_length: Optional[int] = None) -> str:
    length_instruction = f" in {max_length} words or less." if max_length else ""
    return (
        f"Summarize the following text{length_instruction}\n"
        "Just return the summary, no other text or explanation.\n"
        "\n"
        "If the text is a conversation, do not attempt to answer the questions or be involved in the conversation.\n"
        "Just return the summary of the conversation.\n"
        "\n"
        "<text>\n"
        f"{text}\n"
        "</text>\n"
        ":"
    )


def keywords_prompt(text: str, max_keywords: Optional[int] = None) -> str:
    count = f" {max_keywords}" if max_keywords else ""
    return f"Extract the most important{count} keywords from the following text.\n\nText: {text}"


def translate_prompt(text: str, target_language: str) -> str:
    return (
        f"Translate the following text to {target_language}. Text: {text} "
        "Just return the translated text, no other text or explanation."
    )


def describe_image_prompt() -> str:
    return "Describe the following image"


def sentiment_prompt(text: str, categories: Optional[List[str]] = None) -> str:
    """
    Sentiment analysis prompt.

    Caller-supplied categories are accepted but the model is always asked for
    the default positive/negative/neutral scale.
    """
    return (
        "Analyze the sentiment of the following text and return your response in JSON format.\n"
        "\n"
        "  Return the sentiment of the text using the default categories "
        f"{', '.join(DEFAULT_SENTIMENT_CATEGORIES)}.\n"
        "\n"
        "Your response must include:\n"
        '1. "sentiment": The overall sentiment classification\n'
        '2. "confidence": A confidence score between 0 and 1 (where 1 is most confident)\n'
        '3. "emotions": An array of emotion objects, each with "emotion" (string) and "score" (number 0-1)\n'
        "\n"
        "DO NOT CALL ANY TOOLS OR FUNCTIONS\n"
        "\n"
        f"Text to analyze: {text}"
    )


def email_reply_prompt(
    text: str,
    custom_instruction: Optional[str] = None,
    sender_name: Optional[str] = None,
    recipient_name: Optional[str] = None,
) -> str:
    """
    Email reply prompt.

    ``sender_name`` is the person who wrote the incoming email (the reply is
    addressed to them); ``recipient_name`` is the person replying.
    """
    instruction_line = (
        f"Additional guidance from requester: {custom_instruction}"
        if custom_instruction
        else "Write the reply in a professional and concise tone."
    )
    address_block = (
        f"\nAddress the reply to {sender_name} by name, but do not add a greeting line." if sender_name else ""
    )
    signoff_block = (
        f"\nSign the reply as {recipient_name} without adding a signature block." if recipient_name else ""
    )
    perspective_rule = (
        f"\n- {recipient_name} is the recipient of the email, reply using {recipient_name}'s perspective."
        if recipient_name
        else ""
    )
    if sender_name:
        greeting_rule = f'- Always include "hi", "hello" or "dear" addressing {sender_name} unless explicitly asked not to.'
    else:
        greeting_rule = '- Always include "hi", "hello" or "dear" unless explicitly asked not to.'

    return (
        "You are an email assistant. Compose a thoughtful reply to the following email.\n"
        "\n"
        f"{instruction_line}\n"
        f"{address_block}\n"
        f"{signoff_block}\n"
        "\n"
        "Rules:\n"
        f"- Understand the email intent thoroughly before replying.{perspective_rule}\n"
        "- Do not add a subject line to the reply.\n"
        f"\n{greeting_rule}\n"
        "- Be polite, clear, and actionable.\n"
        "- If information is missing, propose reasonable next steps or clarifying questions. "
        "Otherwise, be direct and to the point.\n"
        "\n"
        "<email_to_reply_to>\n"
        '"""\n'
        f"{text}\n"
        "</email_to_reply_to>"
    )


def ask_text_prompt(text: str, question: str) -> str:
    return (
        "Based on the following text, answer the question comprehensively and accurately.\n"
        "\n"
        "Text:\n"
        '"""\n'
        f"{text}\n"
        '"""\n'
        "\n"
        f"Question: {question}\n"
        "\n"
        "Instructions:\n"
        "- Answer the question based solely on the information provided in the text.\n"
        "- If the text does not contain enough information to answer the question, say so clearly.\n"
        "- Be concise but thorough in your response.\n"
        "- Do not add information from outside the provided text.\n"
        "\n"
        "Answer:"
    )


def highlighter_prompt(text: str, max_highlights: Optional[int] = None) -> str:
    if max_highlights:
        max_line = f"Identify up to {max_highlights} of the most important segments in the text."
    else:
        max_line = "Identify the most important segments in the text."
    return (
        f"You are a text highlighter. {max_line}\n"
        "\n"
        "Return your answer strictly as JSON with this exact structure:\n"
        "{\n"
        '  "highlights": [\n'
        '    { "char_start_position": number, "char_end_position": number, "label": string, "description": string }\n'
        "  ]\n"
        "}\n"
        "\n"
        "Rules:\n"
        "- Use zero-based character indices based on the raw input string.\n"
        '- "char_end_position" must be exclusive (i.e., the highlight covers characters in '
        "[char_start_position, char_end_position)).\n"
        "- Ensure 0 <= char_start_position < char_end_position <= input length.\n"
        '- Provide a short "label" (2–3 words) that identifies the type of information for each highlight. '
        'Example labels include "Problem Identification", "Order Information", "Root Cause Analysis", '
        '"Solution Implementation", and "Additional Support". Choose the best label based on context; '
        "create a concise label if none of the examples apply.\n"
        "- Provide a concise human-readable description for why each span is important.\n"
        "- Do not include any explanation outside the JSON.\n"
        " - IMPORTANT: When selecting spans, snap to whole words. Do not cut a word in the middle. "
        "If a span would split a word, expand to include the entire word. "
        "Also trim leading/trailing whitespace from spans.\n"
        "\n"
        "Text:\n"
        '"""\n'
        f"{text}\n"
        '"""'
    )


def meeting_notes_prompt(text: str) -> str:
    return (
        "Extract structured meeting notes from the transcript below.\n"
        "\n"
        "Return STRICT JSON that matches this TypeScript type exactly:\n"
        "{\n"
        '  "decisions": string[],\n'
        '  "tasks": { "task": string, "owner": string | null, "estimate": string | null }[],\n'
        '  "attendees": string[],\n'
        '  "meeting_date": string | null,\n'
        '  "updates": string[],\n'
        '  "summary": string\n'
        "}\n"
        "\n"
        "Rules:\n"
        "- Identify explicit decisions made.\n"
        "- Extract actionable tasks; include owner names if present (e.g., Alice, Bob). "
        "If not present, omit the owner field.\n"
        '- Include task estimates when mentioned (e.g., "2 weeks", "3 days", "quick task", "high priority"). '
        "If not present, omit the estimate field.\n"
        "- Normalize dates to ISO 8601 (YYYY-MM-DD or YYYY-MM-DDTHH:mm) when possible; otherwise omit fields.\n"
        "- Do not include any text outside JSON.\n"
        "- Extract attendee names if mentioned; include distinct names only.\n"
        "- Extract meeting date/time if present and normalize to ISO 8601 (YYYY-MM-DD or YYYY-MM-DDTHH:mm) "
        "as meeting_date.\n"
        ' - Extract short status updates or progress statements as "updates".\n'
        ' - Provide a concise 1–2 sentence "summary" of the meeting at the end.\n'
        "\n"
        "Transcript:\n"
        '"""\n'
        f"{text}\n"
        '"""'
    )


def planner_prompt(
    task: str,
    context: Optional[str] = None,
    max_steps: Optional[int] = None,
    detail_level: Optional[str] = None,
    include_time_estimates: bool = False,
    include_risks: bool = False,
    domain: Optional[str] = None,
) -> str:
    """Markdown plan prompt; unknown detail levels fall back to "detailed"."""
    context_line = f"\nContext/Constraints: {context}" if context else ""
    domain_line = f"\nDomain/Field: {domain}" if domain else ""
    steps_line = f"\nMaximum number of steps: {max_steps}" if max_steps else ""
    detail_instructions = _DETAIL_INSTRUCTIONS.get(detail_level or "detailed", _DETAIL_INSTRUCTIONS["detailed"])

    total_time = "## Estimated Total Time\n[Total time estimate]\n\n" if include_time_estimates else ""
    step_time = "**Time Estimate:** [time]\n" if include_time_estimates else ""
    risks = (
        "## Potential Risks\n\n[List potential risks or challenges with mitigation strategies]\n\n"
        if include_risks
        else ""
    )
    time_rule = (
        'Provide realistic time estimates in human-readable format (e.g., "30 minutes", "2 hours")'
        if include_time_estimates
        else "Focus on clear action items"
    )
    risk_rule = "Include mitigation strategies for each risk" if include_risks else "Focus on actionable steps"

    return (
        "Create a well-structured, actionable plan to accomplish the following task.\n"
        "\n"
        f"Task: {task}{context_line}{domain_line}{steps_line}\n"
        "\n"
        f"{detail_instructions}\n"
        "\n"
        "Format the plan as follows:\n"
        "\n"
        "# [Plan Title]\n"
        "\n"
        "## Overview\n"
        "[Brief description of what the plan accomplishes]\n"
        "\n"
        "## Timeline\n"
        "[Detailed timeline of the plan in a table markdown format]\n"
        "\n"
        f"{total_time}## Steps\n"
        "\n"
        "[For each step, format as:]\n"
        "### Step [number]: [Step Title]\n"
        f"{step_time}**Priority:** [high/medium/low]\n"
        '**Dependencies:** [List any prerequisite steps or "None"]\n'
        "\n"
        "[Detailed description of what needs to be done]\n"
        "\n"
        f"{risks}## Success Criteria\n"
        "\n"
        "[List clear criteria for successful completion]\n"
        "\n"
        "## Key Assumptions\n"
        "\n"
        "[List any assumptions made while creating this plan]\n"
        "\n"
        "Rules:\n"
        "- Number steps sequentially (Step 1, Step 2, etc.)\n"
        "- Make each step actionable and specific\n"
        "- Clearly indicate dependencies between steps\n"
        f"- {time_rule}\n"
        f"- {risk_rule}\n"
        "- Ensure the plan is practical and achievable\n"
        "- Use clear, professional language\n"
        "- Structure the plan for easy reading and understanding"
    )
