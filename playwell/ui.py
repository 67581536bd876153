from datetime import date

import requests
import gradio as gr

from .config import config

TIMER_ACTIONS = {
    "Start / Resume": "start",
    "Pause": "pause",
    "End session": "end-session",
    "Complete": "stop",
    "Drop": "drop",
    "Pick up": "pickup",
}


def _describe(data: dict) -> str:
    minutes, seconds = divmod(int(data.get("duration_seconds", 0)), 60)
    hours, minutes = divmod(minutes, 60)
    lines = [
        f"State: {data.get('state')}",
        f"Played: {hours:02d}:{minutes:02d}:{seconds:02d}",
        f"Sessions: {data.get('session_count', 0)}",
    ]
    if data.get("last_session_history_id"):
        lines.append(f"Recorded session #{data['last_session_history_id']}")
    return "\n".join(lines)


def _error_text(resp: requests.Response) -> str:
    try:
        return resp.json().get("detail", resp.text)
    except ValueError:
        return resp.text


def timer_action(playthrough_id, action_label: str):
    if not playthrough_id:
        return "Enter a playthrough id first.", None

    action = TIMER_ACTIONS[action_label]
    url = f"{config.API_URL}/playthroughs/{int(playthrough_id)}/{action}"

    try:
        resp = requests.post(url, timeout=30)
    except requests.RequestException as e:
        return f"⚠️ Could not reach the API: {e}", None

    if not resp.ok:
        return f"⚠️ {_error_text(resp)}", None

    data = resp.json()
    return _describe(data), data


def load_metrics(user_id, metric_date: str):
    if not user_id:
        return "Enter a user id first.", None

    day = (metric_date or "").strip() or date.today().isoformat()
    url = f"{config.API_URL}/users/{int(user_id)}/metrics/{day}"

    try:
        resp = requests.get(url, timeout=30)
    except requests.RequestException as e:
        return f"⚠️ Could not reach the API: {e}", None

    if resp.status_code == 404:
        return f"No sessions recorded on {day}.", None
    if not resp.ok:
        return f"⚠️ {_error_text(resp)}", None

    data = resp.json()
    summary = (
        f"Health score {data['health_score']}/100 on {day}\n"
        f"{data['total_hours']:.2f} h over {data['session_count']} session(s), "
        f"{data['late_night_minutes']} late-night minute(s)"
    )
    return summary, data


def submit_mood(user_id, rating, note: str):
    if not user_id:
        return "Enter a user id first."

    payload = {"mood_rating": int(rating), "note": note or None}
    try:
        resp = requests.post(f"{config.API_URL}/users/{int(user_id)}/moods", json=payload, timeout=30)
    except requests.RequestException as e:
        return f"⚠️ Could not reach the API: {e}"

    if not resp.ok:
        return f"⚠️ {_error_text(resp)}"
    return f"Mood {payload['mood_rating']} saved."


def build_demo() -> gr.Blocks:
    with gr.Blocks(title=config.APP_NAME) as demo:
        gr.Markdown(
            """
            # 🎮 Playwell
            Track playtime per playthrough and see how healthy each day of play was.

            1. Enter a playthrough id and use the timer buttons.
            2. **End session** records the session and refreshes today's score.
            3. Check a day's score and log how you feel in the other tab.
            """
        )

        with gr.Tab("Timer"):
            playthrough_id = gr.Number(label="Playthrough id", precision=0)
            with gr.Row():
                buttons = [gr.Button(label) for label in TIMER_ACTIONS]
            status = gr.Textbox(label="Status", lines=4)
            raw = gr.JSON(label="Playthrough")

            for button in buttons:
                button.click(
                    timer_action,
                    inputs=[playthrough_id, button],
                    outputs=[status, raw],
                )

        with gr.Tab("Wellness"):
            user_id = gr.Number(label="User id", precision=0)
            metric_date = gr.Textbox(label="Date (YYYY-MM-DD)", placeholder="today")
            load_btn = gr.Button("Load daily score", variant="primary")
            summary = gr.Textbox(label="Summary", lines=3)
            metrics = gr.JSON(label="Metrics")

            load_btn.click(load_metrics, inputs=[user_id, metric_date], outputs=[summary, metrics])

            rating = gr.Slider(1, 5, value=3, step=1, label="Mood")
            note = gr.Textbox(label="Note")
            mood_btn = gr.Button("Save mood")
            mood_status = gr.Textbox(label="")

            mood_btn.click(submit_mood, inputs=[user_id, rating, note], outputs=[mood_status])

    return demo


if __name__ == "__main__":
    build_demo().launch()

