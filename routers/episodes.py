import html
import logging
import uuid
from datetime import datetime
from typing import Optional
from urllib.parse import quote_plus

from fastapi import APIRouter, Body, Form, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse

from config import _from_local_input, _now_local, _to_local
from models import (
    COMMON_TRIGGERS,
    SYMPTOM_FLAGS,
    Episode,
    PainQuality,
    Zone,
    episode_from_row,
    episode_to_row,
    location_label,
    parse_timestamp,
)
from store import StoreError
from ui import (
    _alert,
    _fmt_duration,
    _fmt_local,
    _intensity_color,
    _load_episode,
    _load_episodes,
    _load_open_episode,
    _page,
    _store,
)

logger = logging.getLogger(__name__)

router = APIRouter()

SAVE_FAILED = "Could not save. Please try again."
DELETE_FAILED = "Could not delete. Please try again."
MAX_TEXT_LEN = 2000


def _validate_episode(intensity: int, started_at: Optional[datetime], ended_at: Optional[datetime]) -> str:
    if not (1 <= intensity <= 10):
        return "Intensity must be between 1 and 10"
    if started_at is None:
        return "Invalid start date"
    if started_at > _now_local():
        return "Start cannot be in the future"
    if ended_at is not None and ended_at < started_at:
        return "End must be after start"
    return ""


def _parse_form_time(value: str) -> tuple[str, Optional[datetime]]:
    if not value.strip():
        return ("", None)
    try:
        return ("", _from_local_input(value.strip()))
    except ValueError:
        return ("Invalid date format", None)


def _split_triggers(selected: list[str], custom: str) -> list[str]:
    triggers: list[str] = []
    for t in list(selected) + custom.split(","):
        t = t.strip()
        if t and t not in triggers:
            triggers.append(t)
    return triggers


def _to_input(dt: Optional[datetime]) -> str:
    return _to_local(dt).strftime("%Y-%m-%dT%H:%M") if dt else ""


# ---------------------------------------------------------------------------
# Log form
# ---------------------------------------------------------------------------

def _form_html(ep: Optional[Episode], editing: bool, error: str) -> str:
    ep = ep or Episode(id="", started_at=None)
    sev = ep.intensity
    quality_opts = "".join(
        f'<label class="inline"><input type="radio" name="quality" value="{html.escape(q.value)}"'
        f'{" checked" if q == ep.quality else ""}> {html.escape(q.label)}</label>'
        for q in PainQuality
    )
    zone_opts = "".join(
        f'<label class="inline"><input type="checkbox" name="locations" value="{html.escape(z.value)}"'
        f'{" checked" if z in ep.locations else ""}>'
        f'<span style="width:10px;height:10px;border-radius:50%;background:{z.color};display:inline-block;"></span>'
        f' {html.escape(z.label)}</label>'
        for z in Zone
    )
    symptom_opts = "".join(
        f'<label class="inline"><input type="checkbox" name="symptoms" value="{key}"'
        f'{" checked" if getattr(ep, key) else ""}> {label}</label>'
        for key, label in SYMPTOM_FLAGS
    )
    trigger_opts = "".join(
        f'<label class="inline"><input type="checkbox" name="triggers" value="{html.escape(t)}"'
        f'{" checked" if t in ep.triggers else ""}> {html.escape(t)}</label>'
        for t in COMMON_TRIGGERS
    )
    custom_triggers = ", ".join(t for t in ep.triggers if t not in COMMON_TRIGGERS)
    if editing and ep.is_open:
        heading = "Attack in progress"
    elif editing:
        heading = "Edit Headache"
    else:
        heading = "Log a Headache"
    body = f"""
  <div class="container">
    <a href="/" class="back">&larr; Back</a>
    <h1>{heading}</h1>
    {_alert(error)}
    <div class="card">
      <form method="post" action="/log">
        <input type="hidden" name="id" value="{html.escape(ep.id)}">
        <input type="hidden" name="editing" value="{'1' if editing else ''}">

        <div class="form-group">
          <label for="intensity">Intensity <span style="color:#ef4444">*</span></label>
          <div class="slider-row">
            <input type="range" id="intensity" name="intensity" min="1" max="10" value="{sev}"
                   oninput="updateIntensity(this.value)">
            <div class="sev-badge" id="sev-badge" style="background:{_intensity_color(sev)}">{sev}</div>
          </div>
          <div class="sev-labels"><span>1 — Mild</span><span>10 — Unbearable</span></div>
        </div>

        <div class="form-group"><label>Pain character</label>{quality_opts}</div>
        <div class="form-group"><label>Where does it hurt?</label>{zone_opts}</div>
        <div class="form-group"><label>Symptoms</label>{symptom_opts}</div>

        <div class="form-group">
          <label>Triggers</label>{trigger_opts}
          <input type="text" name="custom_triggers" value="{html.escape(custom_triggers)}"
                 placeholder="Other triggers, comma separated" style="margin-top:6px;">
        </div>

        <div class="form-group">
          <label for="medication">Medication</label>
          <input type="text" id="medication" name="medication" value="{html.escape(ep.medication)}"
                 placeholder="e.g. Ibuprofen 400mg">
        </div>
        <div class="form-group">
          <label for="food">Food</label>
          <input type="text" id="food" name="food" value="{html.escape(ep.food)}"
                 placeholder="What did you eat before it started?">
        </div>
        <div class="form-group">
          <label for="notes">Notes <span style="color:#aaa;font-weight:400">(optional)</span></label>
          <textarea id="notes" name="notes" rows="3">{html.escape(ep.notes)}</textarea>
        </div>

        <div class="form-group">
          <label for="started_at">Started <span style="color:#aaa;font-weight:400">(defaults to now)</span></label>
          <input type="datetime-local" id="started_at" name="started_at" value="{_to_input(ep.started_at)}"
                 required style="width:auto;">
        </div>
        <div class="form-group">
          <label for="ended_at">Ended
            <span style="color:#aaa;font-weight:400">(leave blank while it is still going)</span>
          </label>
          <input type="datetime-local" id="ended_at" name="ended_at" value="{_to_input(ep.ended_at)}"
                 data-no-client-default="1" style="width:auto;">
        </div>

        <div style="display:flex; gap:12px; flex-wrap:wrap;">
          <button class="btn-primary" type="submit" name="action" value="save">Save</button>
          <button class="btn-danger" type="submit" name="action" value="end">End attack</button>
        </div>
      </form>
    </div>
  </div>
  <script>
    const colors = {{1:"#22c55e",2:"#22c55e",3:"#22c55e",
                     4:"#eab308",5:"#eab308",6:"#eab308",
                     7:"#f97316",8:"#f97316",
                     9:"#ef4444",10:"#ef4444"}};
    function updateIntensity(v) {{
      const badge = document.getElementById("sev-badge");
      badge.textContent = v;
      badge.style.background = colors[+v];
      document.getElementById("intensity").style.accentColor = colors[+v];
    }}
    updateIntensity({sev});
  </script>"""
    return _page(heading, body)


@router.get("/log", response_class=HTMLResponse)
def log_form(request: Request, edit: str = "", error: str = ""):
    if edit:
        ep = _load_episode(request, edit)
        if ep is None:
            return RedirectResponse(url="/history", status_code=303)
        return _form_html(ep, True, error)
    # Resume the ongoing attack rather than starting a second one.
    ep = _load_open_episode(request)
    return _form_html(ep, ep is not None, error)


@router.post("/log")
def log_submit(
    request: Request,
    id: str = Form(""),
    editing: str = Form(""),
    action: str = Form("save"),
    intensity: int = Form(5),
    quality: str = Form(PainQuality.PULSING.value),
    locations: list[str] = Form([]),
    symptoms: list[str] = Form([]),
    triggers: list[str] = Form([]),
    custom_triggers: str = Form(""),
    medication: str = Form(""),
    food: str = Form(""),
    notes: str = Form(""),
    started_at: str = Form(""),
    ended_at: str = Form(""),
):
    back = f"/log?edit={quote_plus(id)}&error=" if editing and id else "/log?error="
    err_start, start_dt = _parse_form_time(started_at)
    err_end, end_dt = _parse_form_time(ended_at)
    if err_start or err_end:
        return RedirectResponse(url=back + quote_plus(err_start or err_end), status_code=303)
    if start_dt is None:
        start_dt = _now_local()
    if action == "end" and end_dt is None:
        end_dt = _now_local()
    error = _validate_episode(intensity, start_dt, end_dt)
    if error:
        return RedirectResponse(url=back + quote_plus(error), status_code=303)
    try:
        pain = PainQuality(quality)
    except ValueError:
        pain = PainQuality.OTHER
    episode = Episode(
        id=id if editing and id else str(uuid.uuid4()),
        started_at=start_dt,
        ended_at=end_dt,
        intensity=intensity,
        quality=pain,
        locations=[Zone(z) for z in locations if z in {zone.value for zone in Zone}],
        triggers=_split_triggers(triggers, custom_triggers),
        medication=medication.strip()[:MAX_TEXT_LEN],
        food=food.strip()[:MAX_TEXT_LEN],
        notes=notes.strip()[:MAX_TEXT_LEN],
        **{key: key in symptoms for key, _ in SYMPTOM_FLAGS},
    )
    store = _store(request)
    try:
        if editing and id:
            store.update(episode)
        else:
            store.create(episode)
    except StoreError:
        logger.exception("Saving episode %s failed", episode.id)
        return RedirectResponse(url=back + quote_plus(SAVE_FAILED), status_code=303)
    return RedirectResponse(url="/", status_code=303)


# ---------------------------------------------------------------------------
# Detail
# ---------------------------------------------------------------------------

@router.get("/episodes/{episode_id}", response_class=HTMLResponse)
def episode_detail(request: Request, episode_id: str, error: str = ""):
    ep = _load_episode(request, episode_id)
    if ep is None:
        return RedirectResponse(url="/history", status_code=303)
    zones = ", ".join(html.escape(location_label(z)) for z in ep.locations) or "—"
    symptoms = ", ".join(label for key, label in SYMPTOM_FLAGS if getattr(ep, key)) or "None"
    triggers = ", ".join(html.escape(t) for t in ep.triggers) or "—"

    def row(label, value):
        return (
            f'<div style="display:flex; justify-content:space-between; gap:12px; padding:8px 0;'
            f' border-bottom:1px solid #f0f0f0; font-size:14px;"><span style="color:#888;">{label}</span>'
            f'<span style="text-align:right;">{value}</span></div>'
        )

    body = f"""
  <div class="container">
    <a href="/history" class="back">&larr; History</a>
    <h1>{_fmt_local(ep.started_at, "%A %d %B %Y")}</h1>
    {_alert(error)}
    <div class="card">
      <div class="card-header" style="margin-bottom:8px;">
        <div class="badge" style="background:{_intensity_color(ep.intensity)}">{ep.intensity}</div>
        <div class="card-name">{html.escape(ep.quality.label)}</div>
      </div>
      {row("Started", _fmt_local(ep.started_at))}
      {row("Ended", _fmt_local(ep.ended_at) if ep.ended_at else "Ongoing")}
      {row("Duration", _fmt_duration(ep))}
      {row("Zones", zones)}
      {row("Symptoms", symptoms)}
      {row("Triggers", triggers)}
      {row("Medication", html.escape(ep.medication) or "—")}
      {row("Food", html.escape(ep.food) or "—")}
      {f'<p class="card-notes">{html.escape(ep.notes)}</p>' if ep.notes else ''}
    </div>
    <div style="display:flex; gap:10px; align-items:center;">
      <a href="/log?edit={html.escape(ep.id)}" class="btn-edit">Edit</a>
      <form method="post" action="/episodes/{html.escape(ep.id)}/delete" style="margin:0;"
            onsubmit="return confirm('Delete this episode?');">
        <button type="submit" class="btn-delete">Delete</button>
      </form>
    </div>
  </div>"""
    return _page("Episode", body, active="history")


@router.post("/episodes/{episode_id}/delete")
def episode_delete(request: Request, episode_id: str):
    try:
        _store(request).delete(episode_id)
    except StoreError:
        logger.exception("Deleting episode %s failed", episode_id)
        return RedirectResponse(
            url=f"/episodes/{episode_id}?error=" + quote_plus(DELETE_FAILED), status_code=303
        )
    return RedirectResponse(url="/history", status_code=303)


# ---------------------------------------------------------------------------
# JSON API
# ---------------------------------------------------------------------------

def _episode_json(ep: Episode) -> dict:
    item = episode_to_row(ep, "")
    item.pop("user_id")
    return item


TEXT_FIELDS = ("quality", "medication", "food", "notes")
LIST_FIELDS = ("locations", "triggers")


def _payload_type_error(payload: dict) -> str:
    for key, _ in SYMPTOM_FLAGS:
        if payload.get(key) is not None and not isinstance(payload[key], bool):
            return f"Invalid value for {key}"
    for key in TEXT_FIELDS:
        if payload.get(key) is not None and not isinstance(payload[key], str):
            return f"Invalid value for {key}"
    for key in LIST_FIELDS:
        value = payload.get(key)
        if value is None:
            continue
        if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
            return f"Invalid value for {key}"
    return ""


def _episode_from_payload(payload: dict, episode_id: str) -> tuple[str, Optional[Episode]]:
    error = _payload_type_error(payload)
    if error:
        return (error, None)
    started_raw = payload.get("started_at") or ""
    ended_raw = payload.get("ended_at") or ""
    started_at = parse_timestamp(started_raw)
    ended_at = parse_timestamp(ended_raw)
    if ended_raw and ended_at is None:
        return ("Invalid end date", None)
    try:
        intensity = int(payload.get("intensity", 0))
    except (TypeError, ValueError):
        return ("Intensity must be between 1 and 10", None)
    error = _validate_episode(intensity, started_at, ended_at)
    if error:
        return (error, None)
    row = dict(payload, id=episode_id, started_at=started_at, ended_at=ended_at, intensity=intensity)
    return ("", episode_from_row(row))


@router.get("/api/episodes")
def api_episodes(request: Request):
    return JSONResponse({"episodes": [_episode_json(ep) for ep in _load_episodes(request)]})


@router.get("/api/episodes/open")
def api_open_episode(request: Request):
    ep = _load_open_episode(request)
    return JSONResponse({"episode": _episode_json(ep) if ep else None})


@router.post("/api/episodes")
def api_episodes_create(request: Request, payload: dict = Body(...)):
    error, ep = _episode_from_payload(payload, str(payload.get("id") or uuid.uuid4()))
    if error:
        return JSONResponse({"ok": False, "error": error}, status_code=400)
    try:
        _store(request).create(ep)
    except StoreError:
        logger.exception("Creating episode %s failed", ep.id)
        return JSONResponse({"ok": False, "error": SAVE_FAILED}, status_code=502)
    return JSONResponse({"ok": True, "episode": _episode_json(ep)})


@router.post("/api/episodes/{episode_id}/edit")
def api_episodes_edit(request: Request, episode_id: str, payload: dict = Body(...)):
    error, ep = _episode_from_payload(payload, episode_id)
    if error:
        return JSONResponse({"ok": False, "error": error}, status_code=400)
    try:
        _store(request).update(ep)
    except StoreError:
        logger.exception("Updating episode %s failed", episode_id)
        return JSONResponse({"ok": False, "error": SAVE_FAILED}, status_code=502)
    return JSONResponse({"ok": True, "episode": _episode_json(ep)})


@router.post("/api/episodes/{episode_id}/delete")
def api_episodes_delete(request: Request, episode_id: str):
    try:
        _store(request).delete(episode_id)
    except StoreError:
        logger.exception("Deleting episode %s failed", episode_id)
        return JSONResponse({"ok": False, "error": DELETE_FAILED}, status_code=502)
    return JSONResponse({"ok": True})
