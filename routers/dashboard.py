from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse

from analytics import summary_stats
from config import _now_local
from ui import _episode_card, _fmt_local, _load_episodes, _load_open_episode, _page

router = APIRouter()

RECENT_LIMIT = 3


@router.get("/", response_class=HTMLResponse)
def dashboard(request: Request):
    episodes = _load_episodes(request)
    open_episode = _load_open_episode(request)
    stats = summary_stats(episodes, _now_local())
    days_since = stats["days_since_last"] if stats["days_since_last"] is not None else "-"

    if open_episode is not None:
        action_card = f"""
    <div class="card" style="border-color:#fca5a5; background:#fff7f7;">
      <h2 style="margin:0 0 6px;">Attack in progress</h2>
      <p style="color:#555; font-size:14px; margin:0 0 14px;">
        Started at {_fmt_local(open_episode.started_at, "%H:%M")}. Tap to update or end it.
      </p>
      <a href="/log" class="btn-danger" style="text-decoration:none; display:inline-block;">Update / End attack</a>
    </div>"""
    else:
        action_card = """
    <div class="card">
      <h2 style="margin:0 0 6px;">How is your head?</h2>
      <p style="color:#555; font-size:14px; margin:0 0 14px;">
        Log an attack now to track its duration and symptoms precisely.
      </p>
      <a href="/log" class="btn-primary" style="text-decoration:none; display:inline-block;">Log a headache</a>
    </div>"""

    recent = "".join(_episode_card(ep) for ep in episodes[:RECENT_LIMIT])
    if not recent:
        recent = '<p class="empty">No episodes yet.</p>'

    body = f"""
  <div class="container">
    <h1>Hello</h1>
    {action_card}
    <div class="stat-grid">
      <div class="stat"><div class="stat-value">{stats["total"]}</div><div class="stat-label">Attacks</div></div>
      <div class="stat"><div class="stat-value">{stats["avg_intensity"]}</div><div class="stat-label">Avg intensity</div></div>
      <div class="stat"><div class="stat-value">{days_since}</div><div class="stat-label">Days since last</div></div>
    </div>
    <div style="display:flex; justify-content:space-between; align-items:baseline; margin-top:22px;">
      <h3 style="margin:0;">Recent</h3>
      <a href="/history" class="back">See all &rarr;</a>
    </div>
    {recent}
  </div>"""
    return _page("Headache Diary", body, active="home")
