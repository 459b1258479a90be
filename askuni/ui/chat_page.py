"""NiceGUI chat interface driving the streaming client."""

import base64
import os
from datetime import datetime

import httpx
from nicegui import app, events, ui

from askuni.models.schemas import Attachment
from askuni.streaming.consumer import ConsumerState, StreamConsumer, abort_annotation
from askuni.streaming.coordinator import ChatContext, FallbackCoordinator, api_base_url
from askuni.ui.markdown import markdown_to_html, plain_to_html

CUSTOM_CSS = """
<link href="https://fonts.googleapis.com/css2?family=Inter:wght@400;500;600&display=swap"
      rel="stylesheet">
<style>
    * { font-family: 'Inter', sans-serif; }
    body { background: #f5f5f5; min-height: 100vh; }
    .app-container {
        background: white;
        border-radius: 12px;
        box-shadow: 0 2px 8px rgba(0, 0, 0, 0.1);
        overflow: hidden;
    }
    .header { background: linear-gradient(135deg, #0f4c81 0%, #1e88e5 100%); }
    .message-user {
        background: linear-gradient(135deg, #0f4c81 0%, #1e88e5 100%);
        color: white;
        border-radius: 18px 18px 4px 18px;
    }
    .message-assistant {
        background: #f3f4f6;
        color: #1f2937;
        border-radius: 18px 18px 18px 4px;
    }
    .message-aborted { border: 1px solid #fca5a5; }
    .typing-dot {
        width: 8px; height: 8px;
        background: #1e88e5;
        border-radius: 50%;
        animation: bounce 1.4s infinite ease-in-out;
    }
    .typing-dot:nth-child(2) { animation-delay: 0.2s; }
    .typing-dot:nth-child(3) { animation-delay: 0.4s; }
    @keyframes bounce {
        0%, 60%, 100% { transform: translateY(0); }
        30% { transform: translateY(-6px); }
    }
</style>
"""

START_RECORDING_JS = """
(async () => {
    const stream = await navigator.mediaDevices.getUserMedia({audio: true});
    const recorder = new MediaRecorder(stream);
    recorder.chunks = [];
    recorder.ondataavailable = (e) => recorder.chunks.push(e.data);
    recorder.start();
    window.askuniRecorder = recorder;
    return true;
})()
"""

# Resolves to the base64 recording, or null when nothing was recording
STOP_RECORDING_JS = """
new Promise((resolve) => {
    const recorder = window.askuniRecorder;
    if (!recorder) { resolve(null); return; }
    window.askuniRecorder = null;
    recorder.onstop = () => {
        recorder.stream.getTracks().forEach((track) => track.stop());
        const blob = new Blob(recorder.chunks, {type: recorder.mimeType || "audio/webm"});
        const reader = new FileReader();
        reader.onloadend = () => resolve(reader.result.split(",")[1] || "");
        reader.readAsDataURL(blob);
    };
    recorder.stop();
})
"""


class ChatSession:
    """Messages shown in one browser tab."""

    def __init__(self) -> None:
        self.messages: list[dict] = []

    def add_message(self, role: str, content: str, aborted: bool = False) -> None:
        self.messages.append({
            "role": role,
            "content": content,
            "aborted": aborted,
            "time": datetime.now().strftime("%I:%M %p"),
        })


class BubbleDisplay:
    """Live display bound to one assistant bubble."""

    def __init__(self, thinking: ui.row, content: ui.html, container: ui.element) -> None:
        self._thinking = thinking
        self._content = content
        self._container = container

    def _hide_thinking(self) -> None:
        self._thinking.set_visibility(False)

    def show_partial(self, text: str) -> None:
        self._hide_thinking()
        self._content.set_content(markdown_to_html(text))

    def show_final(self, rendered: str) -> None:
        self._hide_thinking()
        self._content.set_content(rendered)

    def show_aborted(self, text: str) -> None:
        self._hide_thinking()
        self._container.classes(add="message-aborted")
        self._content.set_content(plain_to_html(text))


async def upload_attachment(name: str, content_type: str, data: bytes, token: str | None) -> Attachment:
    """Send a file to the upload endpoint and return its attachment."""
    headers = {"Authorization": f"Bearer {token}"} if token else {}
    async with httpx.AsyncClient(base_url=api_base_url(), timeout=60.0) as client:
        response = await client.post(
            "/upload", files={"file": (name, data, content_type)}, headers=headers
        )
        response.raise_for_status()
        return Attachment.model_validate(response.json()["attachment"])


async def transcribe_audio(
    data: bytes, token: str | None, client: httpx.AsyncClient | None = None
) -> str:
    """Send a voice recording to the speech-to-text endpoint and return its text."""
    headers = {"Authorization": f"Bearer {token}"} if token else {}
    async with client or httpx.AsyncClient(base_url=api_base_url(), timeout=60.0) as http:
        response = await http.post(
            "/stt", files={"audio": ("speech.webm", data, "audio/webm")}, headers=headers
        )
        response.raise_for_status()
        return response.json().get("text", "")


@ui.page("/")
def chat_page() -> None:
    """Main chat page."""
    ui.add_head_html(CUSTOM_CSS)
    session = ChatSession()
    context = ChatContext(
        session_id=app.storage.user.get("session_id"),
        token=app.storage.user.get("token"),
    )
    coordinator = FallbackCoordinator()

    messages_container: ui.column
    attachments_row: ui.row
    history_list: ui.column
    input_field: ui.textarea
    send_btn: ui.button
    mic_btn: ui.button

    def remember_session() -> None:
        app.storage.user["session_id"] = context.session_id
        if context.token is None:
            app.storage.user.pop("token", None)

    def render_message(msg: dict) -> None:
        is_user = msg["role"] == "user"
        align = "justify-end" if is_user else "justify-start"
        bubble = "message-user" if is_user else "message-assistant"
        if msg.get("aborted"):
            bubble += " message-aborted"

        with ui.row().classes(f"w-full {align} gap-3 items-end"):
            with ui.column().classes("max-w-[75%] gap-1"):
                with ui.element("div").classes(f"px-4 py-3 {bubble}"):
                    if is_user or msg.get("aborted"):
                        content = plain_to_html(msg["content"])
                    else:
                        content = markdown_to_html(msg["content"])
                    ui.html(content, sanitize=False).classes("text-sm leading-relaxed")
                ui.label(msg["time"]).classes(
                    f"text-[10px] text-gray-400 {'self-end' if is_user else 'self-start'}"
                )

    def refresh_messages() -> None:
        messages_container.clear()
        with messages_container:
            if not session.messages:
                with ui.column().classes("w-full h-64 items-center justify-center gap-3"):
                    ui.icon("school").classes("text-5xl text-gray-300")
                    ui.label("Ask about your courses").classes("text-lg text-gray-400")
            else:
                for msg in session.messages:
                    render_message(msg)

    def refresh_attachments() -> None:
        attachments_row.clear()
        with attachments_row:
            for attachment in context.attachments:
                ui.chip(attachment.filename, icon="attach_file").props("dense outline")

    def render_live_bubble() -> BubbleDisplay:
        with ui.row().classes("w-full justify-start gap-3 items-end"):
            with ui.element("div").classes("message-assistant px-4 py-3 max-w-[75%]") as container:
                with ui.row().classes("items-center gap-2") as thinking:
                    with ui.row().classes("gap-1"):
                        for _ in range(3):
                            ui.element("div").classes("typing-dot")
                    ui.label("Thinking…").classes("text-sm text-gray-500 italic")
                content = ui.html("", sanitize=False).classes("text-sm leading-relaxed")
        return BubbleDisplay(thinking, content, container)

    async def get_json(path: str) -> dict | None:
        """GET a history endpoint; a rejected credential signs the tab out."""
        async with httpx.AsyncClient(base_url=api_base_url(), timeout=30.0) as client:
            response = await client.get(path, headers=context.headers())
        if response.status_code == httpx.codes.UNAUTHORIZED:
            context.token = None
            remember_session()
            return None
        if not response.is_success:
            return None
        return response.json()

    async def load_history() -> None:
        history_list.clear()
        if not context.token:
            with history_list:
                ui.label("Sign in to keep your chats").classes("text-xs text-gray-400")
            return
        data = await get_json("/chats")
        with history_list:
            for item in (data or {}).get("sessions", []):
                active = "bg-blue-50" if item["session_id"] == context.session_id else ""
                ui.button(
                    item["title"],
                    on_click=lambda sid=item["session_id"]: open_session(sid),
                ).props("flat dense no-caps align=left").classes(f"w-full text-xs {active}")

    async def open_session(session_id: str) -> None:
        coordinator.cancel()
        data = await get_json(f"/chats/{session_id}")
        if data is None:
            return
        context.session_id = session_id
        remember_session()
        session.messages.clear()
        for msg in data.get("messages", []):
            session.add_message("user" if msg["role"] == "user" else "assistant", msg["text"])
        refresh_messages()
        await load_history()

    async def handle_upload(e: events.UploadEventArguments) -> None:
        data = await e.file.read()
        try:
            attachment = await upload_attachment(e.file.name, e.file.content_type, data, context.token)
        except (httpx.HTTPError, KeyError) as err:
            ui.notify(f"Upload failed: {err}", type="negative")
            return
        context.attachments.append(attachment)
        refresh_attachments()
        ui.notify(f"Attached {attachment.filename}", type="positive")

    async def send_message() -> None:
        text = (input_field.value or "").strip()
        if (not text and not context.attachments) or coordinator.busy:
            return

        input_field.value = ""
        send_btn.disable()
        session.add_message("user", text or "📎 (attachments only)")
        refresh_messages()

        with messages_container:
            display = render_live_bubble()
        consumer = StreamConsumer(
            display=display,
            render=markdown_to_html,
            session_id=context.session_id,
        )

        try:
            outcome = await coordinator.send(context.pending(text), context, consumer)
        finally:
            send_btn.enable()

        if outcome.state is ConsumerState.CANCELLED:
            return
        if outcome.ok:
            session.add_message("assistant", outcome.text)
            remember_session()
            refresh_attachments()
            await load_history()
        else:
            session.add_message(
                "assistant", outcome.text + abort_annotation(outcome.error or ""), aborted=True
            )
            ui.notify(outcome.error or "Assistant error", type="negative")
        refresh_messages()

    recording = {"active": False}

    async def toggle_recording() -> None:
        if not recording["active"]:
            try:
                await ui.run_javascript(START_RECORDING_JS, timeout=10.0)
            except TimeoutError:
                ui.notify("Microphone unavailable", type="warning")
                return
            recording["active"] = True
            mic_btn.props("color=red icon=stop")
            return

        recording["active"] = False
        mic_btn.props("color=primary icon=mic")
        encoded = await ui.run_javascript(STOP_RECORDING_JS, timeout=30.0)
        if not encoded:
            return
        try:
            text = await transcribe_audio(base64.b64decode(encoded), context.token)
        except (httpx.HTTPError, ValueError) as err:
            ui.notify(f"Transcription failed: {err}", type="negative")
            return
        input_field.value = f"{input_field.value or ''} {text}".strip()

    async def new_chat() -> None:
        coordinator.cancel()
        context.reset()
        remember_session()
        session.messages.clear()
        refresh_messages()
        refresh_attachments()
        await load_history()

    # === UI Layout ===
    with ui.left_drawer(value=True).classes("bg-gray-50 p-3"):
        ui.button("New chat", icon="add", on_click=new_chat).props("unelevated").classes("w-full")
        ui.separator()
        history_list = ui.column().classes("w-full gap-1")

    with (
        ui.element("div").classes("w-full min-h-screen p-4 md:p-8"),
        ui.column().classes("w-full max-w-3xl mx-auto app-container").style(
            "height: calc(100vh - 4rem)"
        ),
    ):
        with ui.row().classes("w-full header px-5 py-4 items-center justify-between"):
            with ui.row().classes("items-center gap-3"):
                ui.icon("school").classes("text-white text-3xl")
                ui.label("AskUni").classes("text-lg font-semibold text-white")
            ui.label().bind_text_from(
                context, "session_id", lambda s: (s or "new chat")[:10].upper()
            ).classes("text-xs text-white/80 font-mono")

        with (
            ui.scroll_area().classes("flex-grow w-full bg-gray-50"),
            ui.column().classes("w-full p-5"),
        ):
            messages_container = ui.column().classes("w-full gap-4")
            refresh_messages()

        attachments_row = ui.row().classes("w-full px-4 gap-2")
        with ui.row().classes("w-full p-4 gap-3 items-end bg-white border-t"):
            ui.upload(on_upload=handle_upload, auto_upload=True, max_file_size=10 * 1024 * 1024).props(
                "flat dense accept=.pdf,.txt,text/*"
            ).classes("w-32")
            input_field = (
                ui.textarea(placeholder="Ask about a course, room or exam...")
                .props("autogrow borderless dense rows=1")
                .classes("flex-grow")
                .on("keydown.ctrl.enter", send_message)
            )
            mic_btn = ui.button(icon="mic", on_click=toggle_recording).props("round flat")
            send_btn = ui.button(icon="send", on_click=send_message).props("round unelevated")

    ui.timer(0.1, load_history, once=True)


def main() -> None:
    ui.run(
        title="AskUni",
        port=8080,
        reload=False,
        storage_secret=os.getenv("NICEGUI_STORAGE_SECRET", "askuni-secret"),
    )


if __name__ == "__main__":
    main()
