"""
Gradio demo for the order intake assistant.

Run the API first (``uvicorn order_assistant.main:app``), then:
    python demo/gradio_app.py
"""
from __future__ import annotations

import os
import uuid

import gradio as gr
import httpx

API_BASE = os.getenv("API_BASE_URL", "http://127.0.0.1:8000")
API_TIMEOUT = 30.0


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def api_call(method: str, endpoint: str, json_data: dict | None = None) -> dict | list:
    """Make API call to the backend, errors come back as a dict with ``error``."""
    url = f"{API_BASE}{endpoint}"
    try:
        with httpx.Client(timeout=API_TIMEOUT) as client:
            if method == "GET":
                resp = client.get(url)
            else:
                resp = client.post(url, json=json_data)
            resp.raise_for_status()
            return resp.json()
    except httpx.HTTPStatusError as e:
        return {"error": f"HTTP {e.response.status_code}", "detail": e.response.text}
    except httpx.RequestError as e:
        return {"error": "Connection Error", "detail": str(e)}


def send_message(message: str, history: list[dict], session_id: str, locale: str):
    if not message or not message.strip():
        return "", history, session_id, ""
    session_id = session_id or f"web:{uuid.uuid4().hex[:8]}"
    history = history + [{"role": "user", "content": message}]

    result = api_call(
        "POST",
        "/api/chat/message",
        {"session_id": session_id, "message": message, "locale": locale},
    )
    if "error" in result:
        history.append({"role": "assistant", "content": f"⚠️ {result['error']}: {result.get('detail', '')}"})
        return "", history, session_id, ""

    for reply in result.get("messages", []):
        history.append({"role": "assistant", "content": reply.get("text", "")})
    return "", history, session_id, f"phase: {result.get('phase')}"


def reset_chat():
    return [], "", ""


def load_orders():
    result = api_call("GET", "/api/orders")
    if isinstance(result, dict) and "error" in result:
        return [[result["error"], result.get("detail", ""), "", "", ""]]
    return [
        [order["number"], order["customer"].get("name") or "", order["customer"]["phone"], order["total_amount"], order["created_at"]]
        for order in result
    ]


def create_demo() -> gr.Blocks:
    with gr.Blocks(title="Order Intake Assistant | Demo") as demo:
        gr.Markdown("## Order Intake Assistant")

        with gr.Tabs():
            with gr.TabItem("Чат"):
                session_id = gr.State("")
                with gr.Row():
                    with gr.Column(scale=1, min_width=200):
                        locale = gr.Radio(["ru", "en"], value="ru", label="Язык")
                        phase = gr.Markdown("")
                        clear_btn = gr.Button("Новый диалог", variant="secondary")
                    with gr.Column(scale=3):
                        chatbot = gr.Chatbot(label="Диалог", height=460)
                        with gr.Row():
                            message = gr.Textbox(
                                placeholder="Например: 3 Arduino Uno или REV-41",
                                show_label=False,
                                scale=5,
                            )
                            send_btn = gr.Button("Отправить", variant="primary", scale=1)

                send_btn.click(
                    send_message,
                    inputs=[message, chatbot, session_id, locale],
                    outputs=[message, chatbot, session_id, phase],
                )
                message.submit(
                    send_message,
                    inputs=[message, chatbot, session_id, locale],
                    outputs=[message, chatbot, session_id, phase],
                )
                clear_btn.click(reset_chat, outputs=[chatbot, session_id, phase])

            with gr.TabItem("Заказы"):
                orders = gr.Dataframe(headers=["Номер", "Имя", "Телефон", "Сумма", "Создан"], interactive=False)
                refresh_btn = gr.Button("Обновить")
                refresh_btn.click(load_orders, outputs=[orders])

    return demo


if __name__ == "__main__":
    print(f"API endpoint: {API_BASE}")
    create_demo().launch(
        server_name=os.getenv("GRADIO_SERVER_NAME", "127.0.0.1"),
        share=_env_bool("GRADIO_SHARE", False),
        show_error=True,
    )
