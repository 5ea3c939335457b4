import html
import logging
from datetime import datetime
from typing import Optional

from fastapi import Request

from config import _to_local
from models import Episode
from store import RecordStore, StoreError

logger = logging.getLogger(__name__)


def _intensity_color(s):
    if s <= 3: return "#22c55e"   # green
    if s <= 6: return "#eab308"   # yellow
    if s <= 8: return "#f97316"   # orange
    return "#ef4444"              # red


def _store(request: Request) -> RecordStore:
    return request.app.state.store


def _load_episodes(request: Request) -> list[Episode]:
    """All episodes, newest first; a failed read renders as an empty list."""
    try:
        return _store(request).list_all()
    except StoreError:
        logger.exception("Loading episodes failed")
        return []


def _load_open_episode(request: Request) -> Optional[Episode]:
    try:
        return _store(request).find_open_episode()
    except StoreError:
        logger.exception("Loading the open episode failed")
        return None


def _load_episode(request: Request, episode_id: str) -> Optional[Episode]:
    try:
        return _store(request).get(episode_id)
    except StoreError:
        logger.exception("Loading episode %s failed", episode_id)
        return None


def _fmt_local(dt: Optional[datetime], fmt: str = "%b %d, %Y %H:%M") -> str:
    if dt is None:
        return "—"
    return _to_local(dt).strftime(fmt)


def _fmt_duration(episode: Episode) -> str:
    """Human-readable duration, or 'In progress' for an open episode."""
    delta = episode.duration
    if delta is None:
        return "In progress"
    minutes = max(0, int(delta.total_seconds() // 60))
    return f"{minutes // 60}h {minutes % 60}m"


def _alert(message: str) -> str:
    return f'<div class="alert">{html.escape(message)}</div>' if message else ""


def _notice(message: str) -> str:
    if not message:
        return ""
    return (
        '<div style="background:#dcfce7; border:1px solid #86efac; color:#15803d; border-radius:6px;'
        f' padding:10px 14px; margin-bottom:16px; font-size:14px;">{html.escape(message)}</div>'
    )


def _episode_card(ep: Episode) -> str:
    sev = ep.intensity
    tags = ", ".join(html.escape(t) for t in ep.triggers)
    open_badge = (
        ' <span style="background:#fee2e2; color:#b91c1c; font-size:11px; font-weight:700;'
        ' border-radius:10px; padding:2px 8px;">ONGOING</span>'
    ) if ep.is_open else ""
    return f"""
    <a href="/episodes/{html.escape(ep.id)}" style="text-decoration:none; color:inherit;">
      <div class="card">
        <div class="card-header">
          <div class="badge" style="background:{_intensity_color(sev)}">{sev}</div>
          <div>
            <div class="card-name">{html.escape(ep.quality.label)}{open_badge}</div>
            <div class="card-ts">{_fmt_local(ep.started_at)} &middot; {_fmt_duration(ep)}</div>
          </div>
        </div>
        {f'<p class="card-notes">Triggers: {tags}</p>' if tags else ''}
      </div>
    </a>"""


NAV_LINKS = [("/", "Home", "home"), ("/analytics", "Analytics", "analytics"), ("/history", "History", "history")]


def _nav_bar(active: str = "") -> str:
    def links(cls):
        return "".join(
            f'<a href="{href}" class="{cls}{" active" if key == active else ""}">{label}</a>'
            for href, label, key in NAV_LINKS
        )
    actions = (
        '<a href="/log" class="nav-log">+ Log Headache</a>'
        '<form method="post" action="/logout" style="margin:0;">'
        '<button type="submit" class="nav-logout">Log Out</button></form>'
    )
    return (
        '<nav class="screen-only">'
        '<div class="nav-row">'
        '<span class="nav-brand">Headache Diary</span>'
        f'<div class="nav-links">{links("nav-link")}</div>'
        f'<div class="nav-actions">{actions}</div>'
        '<button type="button" class="nav-toggle" id="nav-toggle" aria-label="Open menu"'
        ' onclick="_navToggle()">&#9776;</button>'
        '</div>'
        f'<div id="nav-menu">{links("nav-mlink")}<div class="nav-mactions">{actions}</div></div>'
        '</nav>'
    )


def _page(title: str, body: str, active: str = "", nav: bool = True, head_extra: str = "") -> str:
    return f"""<!DOCTYPE html>
<html>
<head>{PAGE_STYLE}<title>{html.escape(title)}</title>{head_extra}</head>
<body>
  {_nav_bar(active) if nav else ''}
  {body}
</body>
</html>
"""


# Sets the tz_offset cookie read by config._set_client_clock and prefills
# empty datetime-local inputs with the browser's wall time.
PAGE_STYLE = """
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <script>
    (function () {
      window._navToggle = function () {
        var menu = document.getElementById("nav-menu");
        var button = document.getElementById("nav-toggle");
        if (!menu || !button) return;
        var open = menu.classList.toggle("open");
        button.innerHTML = open ? "&#10005;" : "&#9776;";
      };
      function localNow() {
        var now = new Date();
        return new Date(now.getTime() - now.getTimezoneOffset() * 60000).toISOString().slice(0, 16);
      }
      document.cookie = "tz_offset=" + new Date().getTimezoneOffset() + "; path=/; max-age=31536000; SameSite=Lax";
      function prefill() {
        var now = localNow();
        document.querySelectorAll('input[type="datetime-local"]').forEach(function (el) {
          if (!el.value && !el.dataset.noClientDefault) el.value = now;
          if (!el.max) el.max = now;
        });
      }
      if (document.readyState === "loading") {
        document.addEventListener("DOMContentLoaded", prefill);
      } else {
        prefill();
      }
    })();
  </script>
  <style>
    :root { --navy: #1e3a8a; --blue: #3b82f6; --red: #ef4444; --line: #e0e0e0; --muted: #888; }
    body { font-family: system-ui, sans-serif; background: #f5f5f5; margin: 0; color: #222; }
    .container { max-width: 560px; margin: 0 auto; padding: 24px; }
    h1 { margin-bottom: 4px; }
    .card { background: #fff; border: 1px solid var(--line); border-radius: 8px; padding: 16px; margin: 12px 0; }
    .card-header { display: flex; align-items: center; gap: 10px; }
    .card-name { font-size: 17px; font-weight: 600; }
    .card-ts { font-size: 12px; color: var(--muted); margin-top: 2px; }
    .card-notes { margin: 10px 0 0; font-size: 14px; color: #444; }
    .badge, .sev-badge { border-radius: 50%; color: #fff; font-weight: 700; flex-shrink: 0;
                         display: flex; align-items: center; justify-content: center; }
    .badge { width: 36px; height: 36px; font-size: 15px; }
    .sev-badge { width: 42px; height: 42px; font-size: 18px; transition: background 0.2s; }
    .btn-primary, .btn-danger { color: #fff; border: none; border-radius: 8px; padding: 10px 22px;
                                font-size: 15px; font-weight: 600; cursor: pointer; }
    .btn-primary { background: var(--blue); }
    .btn-primary:hover { background: #2563eb; }
    .btn-danger { background: var(--red); }
    .btn-danger:hover { background: #dc2626; }
    .btn-edit, .btn-delete { font-size: 13px; border: 1px solid #d1d5db; border-radius: 6px; padding: 4px 10px;
                             background: none; text-decoration: none; display: inline-block; cursor: pointer; }
    .btn-edit { color: var(--blue); }
    .btn-edit:hover { background: #eff6ff; border-color: var(--blue); }
    .btn-delete { color: var(--muted); }
    .btn-delete:hover { background: #fee2e2; border-color: var(--red); color: var(--red); }
    .back { font-size: 14px; color: var(--blue); text-decoration: none; }
    .back:hover { text-decoration: underline; }
    .form-group { margin-bottom: 20px; }
    label { display: block; font-weight: 600; font-size: 14px; margin-bottom: 6px; }
    label.inline { display: inline-flex; align-items: center; gap: 6px; font-weight: 400; margin: 0 12px 8px 0; }
    input[type=text], input[type=password], input[type=email], input[type=date],
    input[type=datetime-local], textarea, select {
      width: 100%; box-sizing: border-box; border: 1px solid #d1d5db; border-radius: 6px;
      padding: 8px 10px; font-size: 15px; font-family: inherit; background: #fff;
    }
    input:focus, textarea:focus, select:focus { outline: 2px solid var(--blue); border-color: transparent; }
    .slider-row { display: flex; align-items: center; gap: 14px; }
    input[type=range] { flex: 1; accent-color: var(--blue); height: 6px; cursor: pointer; }
    .sev-labels { display: flex; justify-content: space-between; font-size: 11px; color: var(--muted); margin-top: 4px; }
    .alert { background: #fee2e2; border: 1px solid #fca5a5; color: #b91c1c;
             border-radius: 6px; padding: 10px 14px; margin-bottom: 16px; font-size: 14px; }
    .empty { color: var(--muted); font-style: italic; margin-top: 16px; }
    .stat-grid { display: grid; grid-template-columns: repeat(3, 1fr); gap: 10px; }
    .stat { background: #fff; border: 1px solid var(--line); border-radius: 8px; padding: 12px; text-align: center; }
    .stat-value { font-size: 22px; font-weight: 800; }
    .stat-label { font-size: 11px; color: var(--muted); text-transform: uppercase; letter-spacing: .04em; }
    .cal-grid { display: grid; grid-template-columns: repeat(7, 1fr); gap: 4px; text-align: center; }
    .cal-day { aspect-ratio: 1; border-radius: 6px; border: 1px solid #e5e7eb; background: #fff;
               display: flex; align-items: center; justify-content: center; font-size: 13px;
               text-decoration: none; color: #444; }
    .cal-day.low { background: #dcfce7; border-color: #86efac; font-weight: 700; }
    .cal-day.medium { background: #ffedd5; border-color: #fdba74; font-weight: 700; }
    .cal-day.high { background: #fee2e2; border-color: #fca5a5; font-weight: 700; }
    .cal-day.selected { outline: 2px solid var(--blue); }
    nav { background: var(--navy); }
    .nav-row { padding: 0 24px; height: 52px; display: flex; align-items: center; gap: 20px; }
    .nav-brand { font-weight: 800; color: #fff; font-size: 15px; flex-shrink: 0; margin-right: 8px; }
    .nav-links { flex: 1; display: flex; gap: 20px; }
    .nav-link { color: rgba(255,255,255,0.7); font-size: 14px; font-weight: 500; text-decoration: none; }
    .nav-link.active { color: #fff; font-weight: 600; border-bottom: 2px solid rgba(255,255,255,0.8); padding-bottom: 2px; }
    .nav-actions { display: flex; align-items: center; gap: 16px; flex-shrink: 0; }
    .nav-log { background: #fff; color: var(--navy); text-decoration: none; font-size: 13px; font-weight: 700;
               padding: 6px 14px; border-radius: 20px; white-space: nowrap; }
    .nav-logout { background: transparent; border: 1px solid rgba(255,255,255,0.4); color: rgba(255,255,255,0.7);
                  border-radius: 6px; padding: 4px 12px; font-size: 13px; cursor: pointer; font-family: inherit; }
    .nav-toggle { display: none; background: none; border: none; color: #fff; font-size: 22px;
                  cursor: pointer; padding: 4px 8px; line-height: 1; margin-left: auto; }
    #nav-menu { display: none; flex-direction: column; padding: 4px 24px 16px;
                border-top: 1px solid rgba(255,255,255,0.15); }
    #nav-menu.open { display: flex; }
    .nav-mlink { color: rgba(255,255,255,0.85); font-size: 15px; text-decoration: none;
                 padding: 12px 0; border-bottom: 1px solid rgba(255,255,255,0.1); }
    .nav-mlink.active { color: #fff; font-weight: 600; }
    .nav-mactions { display: flex; gap: 8px; flex-wrap: wrap; padding: 12px 0 4px; }
    @media (max-width: 640px) {
      .nav-links, .nav-actions { display: none; }
      .nav-toggle { display: block; }
      .container { padding: 16px; }
    }
  </style>
"""
