"""Koç, günlük araç ve check-in promptları; model yanıtlarının ayrıştırılması."""
import json
import re
from dataclasses import dataclass

COACH_SYSTEM_PROMPT = """You are a supportive and insightful personal coach and journaling companion. Your role is to:

1. **Active Listening**: Pay close attention to what the user shares about their day, feelings, and experiences. Ask thoughtful follow-up questions.
2. **Gentle Guidance**: Offer suggestions for personal growth when appropriate, framed as possibilities rather than directives.
3. **Emotional Support**: Validate the user's feelings without being dismissive or overly positive.
4. **Pattern Recognition**: Notice recurring themes, challenges, or successes in the user's entries and point them out gently.
5. **Goal Support**: Help the user reflect on their goals and progress. Celebrate wins, no matter how small.

Communication style: warm but not saccharine, concise, conversational, one question at a time.
Never provide medical, legal, or financial advice, and never be judgmental."""

DAILY_TOOL_SYSTEM_PROMPT = """You create one small, self-contained interactive web tool per day for a journaling user.
The tool must relate to themes in the user's recent journal entries (e.g. a breathing timer, a gratitude
list, a decision matrix) and must not repeat a previous tool.

Respond with ONLY a JSON object:
{"title": "...", "description": "one sentence", "journalContext": "which theme inspired it", "htmlCode": "<!DOCTYPE html>..."}
htmlCode must be a complete HTML document with inline CSS and JavaScript, no external resources."""

DAILY_TOOL_REFINE_SYSTEM_PROMPT = """You improve an existing interactive web tool based on the user's feedback.
Keep what works, change what the user asks for, keep it self-contained (inline CSS/JS, no external resources).

Respond with ONLY a JSON object:
{"title": "...", "description": "one sentence", "journalContext": "...", "htmlCode": "<!DOCTYPE html>..."}"""

# Sohbet bağlamına giren son günlük kaydı sayısı
COACH_CONTEXT_ENTRIES = 5
DAILY_TOOL_CONTEXT_ENTRIES = 7
DAILY_TOOL_PREVIOUS_TOOLS = 14


def format_entry(date, content: str, mood: str | None = None) -> str:
    day = date.strftime("%Y-%m-%d") if date else "?"
    mood_part = f" (Mood: {mood})" if mood else ""
    return f"[{day}]{mood_part}\n{content}"


def build_coach_context(recent_entries: list[str], opening_messages: list[str] | None = None) -> str:
    """Sistem promptu + son günlük kayıtları. Sohbeti koç başlattıysa açılış mesajı da eklenir."""
    context = COACH_SYSTEM_PROMPT
    if recent_entries:
        context += "\n\n## Recent Journal Entries (for context)\n" + "\n\n---\n\n".join(recent_entries)
    if opening_messages:
        opener = "\n\n".join(opening_messages)
        context += (
            "\n\n## Your Previous Message (you initiated this conversation)\n"
            f'You sent a check-in message to the user that started this conversation:\n"{opener}"\n\n'
            "The user is now responding to your message. Continue the conversation naturally."
        )
    return context


def split_chat_history(messages: list[tuple[str, str]]) -> tuple[list[str], list[dict]]:
    """
    (role, content) listesini modele uygun hale getirir: boş mesajlar atlanır,
    geçmiş ilk kullanıcı mesajından başlar. İlk kullanıcı mesajından önceki
    asistan mesajları (koçun başlattığı sohbet) ayrı döner.
    """
    filtered = [(role, content) for role, content in messages if content]
    first_user = next((i for i, (role, _) in enumerate(filtered) if role == "user"), None)
    if first_user is None:
        return [], []
    openers = [content for role, content in filtered[:first_user] if role == "assistant"]
    history = [{"role": role, "content": content} for role, content in filtered[first_user:]]
    return openers, history


def build_daily_tool_prompt(entries: list[str], previous_tools: list[tuple[str, str]]) -> str:
    parts = []
    if entries:
        parts.append("## Recent journal entries\n" + "\n\n---\n\n".join(entries))
    else:
        parts.append("The user has no recent journal entries. Create a gentle, general-purpose reflection tool.")
    if previous_tools:
        listed = "\n".join(f"- {title}: {description}" for title, description in previous_tools)
        parts.append("## Previous tools (do not repeat these)\n" + listed)
    parts.append("Create today's tool.")
    return "\n\n".join(parts)


def build_refine_prompt(title: str, description: str, journal_context: str | None, html_code: str, feedback: str) -> str:
    return (
        f"## Current tool\nTitle: {title}\nDescription: {description}\n"
        f"Journal context: {journal_context or '-'}\n\n```html\n{html_code}\n```\n\n"
        f"## User feedback\n{feedback}\n\nReturn the improved tool."
    )


@dataclass
class GeneratedTool:
    title: str
    description: str
    html_code: str
    journal_context: str | None = None


_CODE_BLOCK_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")


def _extract_json_object(response: str, what: str) -> dict:
    """Yanıt düz JSON, ```json bloğu veya metin içinde {...} olabilir."""
    raw = (response or "").strip()
    if not raw.startswith("{"):
        match = _CODE_BLOCK_RE.search(raw)
        if match:
            raw = match.group(1).strip()
        else:
            start, end = raw.find("{"), raw.rfind("}")
            if start != -1 and end > start:
                raw = raw[start : end + 1]
    try:
        data = json.loads(raw)
    except ValueError as e:
        raise ValueError(f"{what} response is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ValueError(f"{what} response is not a JSON object")
    return data


def parse_generated_tool(response: str) -> GeneratedTool:
    """Model yanıtından araç JSON'unu çıkarır. Eksik/bozuk alan varsa ValueError."""
    data = _extract_json_object(response, "Tool")
    for field in ("title", "description", "htmlCode"):
        if not isinstance(data.get(field), str) or not data[field].strip():
            raise ValueError(f"Missing or invalid {field} in response")
    html = data["htmlCode"]
    if "<!DOCTYPE html>" not in html and "<html" not in html:
        raise ValueError("Invalid HTML code generated - missing DOCTYPE or html tag")
    context = data.get("journalContext")
    return GeneratedTool(
        title=data["title"].strip(),
        description=data["description"].strip(),
        html_code=html,
        journal_context=context if isinstance(context, str) and context.strip() else None,
    )


# --- kişisel check-in bildirimi ---

CHECKIN_SYSTEM_PROMPT = """You are a supportive personal coach generating a brief push notification message.

Your task is to create a personalized, caring notification that:
1. References something specific from the user's recent journal entries (a challenge, goal, event, or feeling they mentioned)
2. Is appropriate for the time of day
3. Shows you remember and care about what they shared
4. Encourages them to check in or reflect

Guidelines:
- Keep the message short (under 100 characters for the body)
- Be warm and genuine, not robotic or generic
- Don't repeat the exact same topics/phrases as recent notifications
- Match the tone to the time of day (energizing in morning, reflective in evening)
- Ask a simple, caring question OR make an encouraging observation
- Never be pushy or make the user feel guilty

Time of day context:
- Morning (5am-12pm): motivation, plans for the day
- Afternoon (12pm-5pm): mid-day check-in, how things are going
- Evening (5pm-9pm): reflection on how the day went
- Night (9pm-5am): gentle reflection, winding down

You MUST respond with valid JSON in this exact format:
{"title": "Brief title (max 50 chars)", "body": "The notification message (max 100 chars)", "topicReference": "Brief description of which journal topic you referenced"}"""

CHECKIN_CONTEXT_ENTRIES = 5
CHECKIN_ENTRY_WINDOW_DAYS = 7
CHECKIN_HISTORY = 10
CHECKIN_HISTORY_WINDOW_DAYS = 3
CHECKIN_ENTRY_MAX_CHARS = 500
CHECKIN_TITLE_MAX_CHARS = 50
CHECKIN_BODY_MAX_CHARS = 100
CHECKIN_TOPIC_MAX_CHARS = 200


def time_of_day(hour: int) -> str:
    if 5 <= hour < 12:
        return "morning"
    if 12 <= hour < 17:
        return "afternoon"
    if 17 <= hour < 21:
        return "evening"
    return "night"


def build_checkin_prompt(
    time_of_day_label: str,
    entries: list[tuple],
    recent_notifications: list[tuple],
    user_name: str | None = None,
) -> str:
    """
    entries: (date, content, mood, tags) en yeniden eskiye.
    recent_notifications: (sent_at, body, topic_reference, time_of_day).
    """
    lines = [f"Current time of day: {time_of_day_label}"]
    if user_name:
        lines.append(f"User's name: {user_name}")
    lines.append("\n## Recent Journal Entries (newest first)")
    if not entries:
        lines.append("No recent entries. Generate a gentle reminder to journal.")
    for i, (date, content, mood, tags) in enumerate(entries, start=1):
        lines.append(f"\n### Entry {i} ({date.strftime('%a, %b %d') if date else '?'})")
        if mood:
            lines.append(f"Mood: {mood}")
        if tags:
            lines.append(f"Tags: {tags}")
        text = content or ""
        if len(text) > CHECKIN_ENTRY_MAX_CHARS:
            text = text[:CHECKIN_ENTRY_MAX_CHARS] + "..."
        lines.append(f"Content: {text}")
    if recent_notifications:
        lines.append("\n## Recent Notifications Sent (avoid repeating these topics)")
        for sent_at, body, topic, label in recent_notifications:
            line = f'- "{body}" ({label}, {sent_at.strftime("%a, %b %d %H:00") if sent_at else "?"})'
            if topic:
                line += f" [Topic: {topic}]"
            lines.append(line)
    lines.append(
        "\nGenerate a unique, personalized notification that references their journal content "
        "but doesn't repeat topics from recent notifications."
    )
    return "\n".join(lines)


@dataclass
class GeneratedCheckin:
    title: str
    body: str
    topic_reference: str | None = None


def parse_checkin(response: str) -> GeneratedCheckin:
    """title ve body zorunlu; alanlar bildirim sınırlarına kırpılır."""
    data = _extract_json_object(response, "Notification")
    for field in ("title", "body"):
        if not isinstance(data.get(field), str) or not data[field].strip():
            raise ValueError(f"Missing or invalid {field} in response")
    topic = data.get("topicReference")
    topic = topic.strip()[:CHECKIN_TOPIC_MAX_CHARS] if isinstance(topic, str) and topic.strip() else None
    return GeneratedCheckin(
        title=data["title"].strip()[:CHECKIN_TITLE_MAX_CHARS],
        body=data["body"].strip()[:CHECKIN_BODY_MAX_CHARS],
        topic_reference=topic,
    )
