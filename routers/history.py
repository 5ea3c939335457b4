import calendar
import html
from datetime import date
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse

from analytics import filter_window, max_intensity_by_day
from config import _client_tz, _today_local
from models import Episode
from ui import _episode_card, _load_episodes, _page

router = APIRouter()

SYMPTOM_FILTERS = {
    "aura": ("has_aura", "Aura"),
    "nausea": ("has_nausea", "Nausea"),
    "light": ("is_light_sensitive", "Light sensitivity"),
}

WEEKDAY_HEADERS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]


def filter_episodes(episodes: list[Episode], q: str = "", min_intensity: int = 0,
                    symptom: str = "") -> list[Episode]:
    """Text search over notes, medication and triggers, plus intensity and symptom filters."""
    needle = q.strip().lower()
    flag = SYMPTOM_FILTERS.get(symptom, (None, None))[0]
    result = []
    for ep in episodes:
        if ep.intensity < min_intensity:
            continue
        if flag and not getattr(ep, flag):
            continue
        if needle:
            haystack = " ".join([ep.notes, ep.medication, *ep.triggers]).lower()
            if needle not in haystack:
                continue
        result.append(ep)
    return result


def _calendar_class(intensity: Optional[int]) -> str:
    if intensity is None:
        return ""
    if intensity >= 7:
        return "high"
    if intensity >= 4:
        return "medium"
    return "low"


def _parse_month(value: str, today: date) -> date:
    try:
        year, month = value.split("-")
        return date(int(year), int(month), 1)
    except ValueError:
        return today.replace(day=1)


def _parse_day(value: str) -> Optional[date]:
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


def _month_key(first: date) -> str:
    return f"{first.year:04d}-{first.month:02d}"


def _shift_month(first: date, delta: int) -> date:
    index = first.year * 12 + first.month - 1 + delta
    index = min(max(index, date.min.year * 12), date.max.year * 12 + 11)
    return date(index // 12, index % 12 + 1, 1)


def _list_view(episodes: list[Episode], q: str, min_intensity: int, symptom: str) -> str:
    filtered = filter_episodes(episodes, q, min_intensity, symptom)
    intensity_opts = "".join(
        f'<option value="{n}"{" selected" if n == min_intensity else ""}>{"Any" if n == 0 else f"{n}+"}</option>'
        for n in range(0, 11)
    )
    symptom_opts = '<option value="">Any symptom</option>' + "".join(
        f'<option value="{key}"{" selected" if key == symptom else ""}>{label}</option>'
        for key, (_, label) in SYMPTOM_FILTERS.items()
    )
    cards = "".join(_episode_card(ep) for ep in filtered)
    if not cards:
        cards = '<p class="empty">No episodes match these filters.</p>' if episodes else \
            '<p class="empty">No episodes yet.</p>'
    return f"""
    <form method="get" action="/history" class="card" style="display:flex; gap:10px; flex-wrap:wrap; align-items:flex-end;">
      <input type="hidden" name="view" value="list">
      <div style="flex:1; min-width:160px;">
        <label for="q">Search</label>
        <input type="text" id="q" name="q" value="{html.escape(q)}" placeholder="Notes, medication, triggers">
      </div>
      <div>
        <label for="min_intensity">Intensity</label>
        <select id="min_intensity" name="min_intensity">{intensity_opts}</select>
      </div>
      <div>
        <label for="symptom">Symptom</label>
        <select id="symptom" name="symptom">{symptom_opts}</select>
      </div>
      <button type="submit" class="btn-primary" style="padding:8px 16px;">Filter</button>
    </form>
    <p style="font-size:13px; color:#888;">{len(filtered)} of {len(episodes)} episodes</p>
    {cards}"""


def _calendar_view(episodes: list[Episode], month: str, day: str) -> str:
    tz = _client_tz()
    today = _today_local()
    first = _parse_month(month, today)
    selected = _parse_day(day)
    if not month and not day:
        selected = today
    max_by_day = max_intensity_by_day(episodes, tz)

    def month_link(target: date, label: str) -> str:
        query = urlencode({"view": "calendar", "month": _month_key(target)})
        return f'<a href="/history?{query}" class="back">{label}</a>'

    cells = "".join(f'<div style="font-size:11px; color:#888; font-weight:600;">{d}</div>' for d in WEEKDAY_HEADERS)
    for week in calendar.Calendar(firstweekday=0).monthdayscalendar(first.year, first.month):
        for n in week:
            if not n:
                cells += "<div></div>"
                continue
            d = first.replace(day=n)
            classes = ["cal-day", _calendar_class(max_by_day.get(d))]
            if d == selected:
                classes.append("selected")
            query = urlencode({"view": "calendar", "month": _month_key(first), "day": d.isoformat()})
            cells += f'<a href="/history?{query}" class="{" ".join(c for c in classes if c)}">{d.day}</a>'

    day_section = ""
    if selected is not None:
        day_eps = filter_window(episodes, selected, selected, tz)
        day_cards = "".join(_episode_card(ep) for ep in day_eps) or \
            '<p class="empty">No headaches on this day.</p>'
        day_section = f"""
    <h3 style="margin-top:22px;">{selected.strftime("%A %d %B %Y")}</h3>
    {day_cards}"""

    return f"""
    <div class="card">
      <div style="display:flex; justify-content:space-between; align-items:center; margin-bottom:12px;">
        {month_link(_shift_month(first, -1), "&larr; Prev")}
        <strong>{first.strftime("%B %Y")}</strong>
        {month_link(_shift_month(first, 1), "Next &rarr;")}
      </div>
      <div class="cal-grid">{cells}</div>
      <div style="display:flex; gap:12px; font-size:12px; color:#666; margin-top:12px;">
        <span><span class="cal-day low" style="display:inline-block; width:12px; height:12px;"></span> 1-3</span>
        <span><span class="cal-day medium" style="display:inline-block; width:12px; height:12px;"></span> 4-6</span>
        <span><span class="cal-day high" style="display:inline-block; width:12px; height:12px;"></span> 7-10</span>
      </div>
    </div>
    {day_section}"""


@router.get("/history", response_class=HTMLResponse)
def history(
    request: Request,
    view: str = "list",
    q: str = "",
    min_intensity: int = 0,
    symptom: str = "",
    month: str = "",
    day: str = "",
):
    episodes = _load_episodes(request)
    calendar_mode = view == "calendar"

    def tab(key, label):
        if (key == "calendar") == calendar_mode:
            s = "background:#1e3a8a; color:#fff; border-color:#1e3a8a;"
        else:
            s = "background:#fff; color:#444;"
        return (
            f'<a href="/history?view={key}" style="text-decoration:none; border:1px solid #d1d5db;'
            f' border-radius:6px; padding:6px 14px; font-size:13px; {s}">{label}</a>'
        )

    content = _calendar_view(episodes, month, day) if calendar_mode else \
        _list_view(episodes, q, min_intensity, symptom)
    body = f"""
  <div class="container">
    <h1>History</h1>
    <div style="display:flex; gap:8px; margin:12px 0;">
      {tab("list", "List")}
      {tab("calendar", "Calendar")}
    </div>
    {content}
  </div>"""
    return _page("History", body, active="history")
