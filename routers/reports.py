import html
import json
from datetime import date, timedelta
from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, JSONResponse, Response

from analytics import (
    active_time_buckets,
    daily_trend,
    filter_window,
    time_of_day_distribution,
    top_triggers,
    zone_frequency,
)
from config import ANALYTICS_DEFAULT_DAYS, EXPORT_LOCALE, _client_tz, _today_local
from export import episodes_to_csv
from models import Episode
from ui import _alert, _load_episodes, _page

router = APIRouter()


def _parse_date(value: str) -> Optional[date]:
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        return None


def _days_before(day: date, days: int) -> date:
    try:
        return day - timedelta(days=days)
    except OverflowError:
        return date.min


def _window(start: str, end: str) -> tuple[date, date]:
    """Requested range, defaulting to the last ANALYTICS_DEFAULT_DAYS days."""
    today = _today_local()
    end_d = _parse_date(end) or today
    start_d = _parse_date(start) or _days_before(end_d, ANALYTICS_DEFAULT_DAYS - 1)
    return start_d, end_d


def _summary(episodes: list[Episode], start: date, end: date) -> dict:
    tz = _client_tz()
    windowed = filter_window(episodes, start, end, tz)
    return {
        "start": start.isoformat(),
        "end": end.isoformat(),
        "count": len(windowed),
        "trend": [
            {"date": p.day.isoformat(), "label": p.label, "intensity": p.intensity}
            for p in daily_trend(episodes, start, end, tz)
        ],
        "zones": [{"name": z.name, "count": z.count, "color": z.color} for z in zone_frequency(windowed)],
        "time_of_day": [
            {"bucket": b.bucket.value, "label": b.bucket.label, "count": b.count}
            for b in active_time_buckets(time_of_day_distribution(windowed, tz))
        ],
        "triggers": [
            {"label": t.label, "count": t.count, "share": round(t.share, 4)}
            for t in top_triggers(windowed)
        ],
    }


@router.get("/api/analytics")
def api_analytics(request: Request, start: str = "", end: str = ""):
    start_d, end_d = _window(start, end)
    return JSONResponse(_summary(_load_episodes(request), start_d, end_d))


@router.get("/analytics/export.csv")
def analytics_export_csv(request: Request):
    body = episodes_to_csv(_load_episodes(request), _client_tz(), EXPORT_LOCALE)
    filename = f"headache_export_{_today_local().isoformat()}.csv"
    return Response(
        content=body.encode("utf-8"),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def _trigger_rows(triggers: list[dict]) -> str:
    if not triggers:
        return '<p class="empty">No triggers recorded in this period.</p>'
    rows = ""
    for t in triggers:
        pct = round(t["share"] * 100)
        rows += f"""
        <div style="margin-bottom:10px;">
          <div style="display:flex; justify-content:space-between; font-size:14px;">
            <span>{html.escape(t["label"])}</span><span style="color:#888;">{t["count"]}x &middot; {pct}%</span>
          </div>
          <div style="background:#f1f5f9; border-radius:4px; height:8px; margin-top:4px;">
            <div style="background:#6366f1; width:{min(pct, 100)}%; height:8px; border-radius:4px;"></div>
          </div>
        </div>"""
    return rows


@router.get("/analytics", response_class=HTMLResponse)
def analytics_page(request: Request, start: str = "", end: str = ""):
    episodes = _load_episodes(request)
    today = _today_local()
    recent = _summary(episodes, _days_before(today, ANALYTICS_DEFAULT_DAYS - 1), today)
    start_d, end_d = _window(start, end)
    window = _summary(episodes, start_d, end_d)
    error = "The end date must not be before the start date" if end_d < start_d else ""
    # "</" would close the script tag early.
    chart_data = json.dumps({"recent": recent, "window": window}).replace("</", "<\\/")

    print_style = """
  <style>
@media print {
  nav, .screen-only { display: none !important; }
  .print-only        { display: block !important; }
  body               { font-size: 11pt; background: #fff; }
  .container         { max-width: 100% !important; padding: 0 !important; }
  .card              { box-shadow: none !important; border: 1px solid #e5e7eb !important; page-break-inside: avoid; }
  canvas             { max-width: 100% !important; }
  h2, h3             { page-break-after: avoid; }
}
  </style>"""

    body = f"""
  <div class="container" style="max-width:760px;">
    <div class="print-only" style="display:none; border-bottom:2px solid #1e3a8a; padding-bottom:12px; margin-bottom:16px;">
      <h2 style="margin:0 0 6px; font-size:18pt; color:#1e3a8a;">Headache Report</h2>
      <p style="margin:2px 0; font-size:11pt;"><strong>Period:</strong> {start_d.strftime("%d %b %Y")} &ndash; {end_d.strftime("%d %b %Y")}</p>
      <p style="margin:2px 0; font-size:10pt; color:#6b7280;">Generated {today.strftime("%d %b %Y")}</p>
    </div>
    <div class="screen-only" style="display:flex; align-items:center; justify-content:space-between; gap:12px; flex-wrap:wrap;">
      <h1 style="margin:0;">Analytics</h1>
      <div style="display:flex; gap:8px;">
        <a href="/analytics/export.csv" class="btn-edit">Download CSV</a>
        <button onclick="window.print()" style="border:1px solid #7c3aed; background:#7c3aed; color:#fff; border-radius:6px; padding:6px 12px; font-size:13px; cursor:pointer; font-family:inherit;">Print Report</button>
      </div>
    </div>

    <div class="card">
      <h3 style="margin-top:0;">Last {ANALYTICS_DEFAULT_DAYS} days</h3>
      <p style="font-size:13px; color:#888; margin:0 0 10px;">{recent["count"]} attacks, average intensity per day</p>
      <canvas id="recentChart" height="140"></canvas>
    </div>

    <form method="get" action="/analytics" class="card screen-only" style="display:flex; gap:10px; flex-wrap:wrap; align-items:flex-end;">
      <div>
        <label for="start">From</label>
        <input type="date" id="start" name="start" value="{start_d.isoformat()}">
      </div>
      <div>
        <label for="end">To</label>
        <input type="date" id="end" name="end" value="{end_d.isoformat()}">
      </div>
      <button type="submit" class="btn-primary" style="padding:8px 16px;">Apply</button>
    </form>
    {_alert(error)}

    <div class="card">
      <h3 style="margin-top:0;">Intensity trend</h3>
      <p style="font-size:13px; color:#888; margin:0 0 10px;">{window["count"]} attacks in this period</p>
      <canvas id="windowChart" height="140"></canvas>
    </div>

    <div class="card">
      <h3 style="margin-top:0;">Where it hurts</h3>
      <div id="zones-empty" class="empty" style="display:none;">No zones recorded in this period.</div>
      <canvas id="zoneChart" height="180"></canvas>
    </div>

    <div class="card">
      <h3 style="margin-top:0;">Time of day</h3>
      <div id="time-empty" class="empty" style="display:none;">No attacks in this period.</div>
      <canvas id="timeChart" height="180"></canvas>
    </div>

    <div class="card">
      <h3 style="margin-top:0;">Top triggers</h3>
      {_trigger_rows(window["triggers"])}
    </div>
  </div>

  <script src="https://cdn.jsdelivr.net/npm/chart.js@4.4.7/dist/chart.umd.min.js"></script>
  <script>
    const DATA = {chart_data};
    const TIME_COLORS = {{morning: "#facc15", afternoon: "#fb923c", evening: "#6366f1", night: "#1e3a8a"}};

    function trendChart(id, trend) {{
      new Chart(document.getElementById(id), {{
        type: "line",
        data: {{
          labels: trend.map(p => p.label),
          datasets: [{{
            data: trend.map(p => p.intensity),
            borderColor: "#ef4444",
            backgroundColor: "rgba(239,68,68,0.12)",
            fill: true,
            tension: 0.3,
            pointRadius: 2,
          }}],
        }},
        options: {{
          plugins: {{ legend: {{ display: false }} }},
          scales: {{ y: {{ min: 0, max: 10 }} }},
        }},
      }});
    }}

    trendChart("recentChart", DATA.recent.trend);
    trendChart("windowChart", DATA.window.trend);

    if (DATA.window.zones.length) {{
      new Chart(document.getElementById("zoneChart"), {{
        type: "doughnut",
        data: {{
          labels: DATA.window.zones.map(z => z.name),
          datasets: [{{ data: DATA.window.zones.map(z => z.count), backgroundColor: DATA.window.zones.map(z => z.color) }}],
        }},
      }});
    }} else {{
      document.getElementById("zoneChart").style.display = "none";
      document.getElementById("zones-empty").style.display = "block";
    }}

    if (DATA.window.time_of_day.length) {{
      new Chart(document.getElementById("timeChart"), {{
        type: "pie",
        data: {{
          labels: DATA.window.time_of_day.map(b => b.label),
          datasets: [{{
            data: DATA.window.time_of_day.map(b => b.count),
            backgroundColor: DATA.window.time_of_day.map(b => TIME_COLORS[b.bucket]),
          }}],
        }},
      }});
    }} else {{
      document.getElementById("timeChart").style.display = "none";
      document.getElementById("time-empty").style.display = "block";
    }}
  </script>"""
    return _page("Analytics", body, active="analytics", head_extra=print_style)
