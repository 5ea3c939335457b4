import csv
import io
from datetime import tzinfo
from typing import Iterable, Optional

from models import Episode, Zone, location_label

CSV_BOM = "\ufeff"

CSV_LABELS = {
    "en": {
        "headers": [
            "Start", "End", "Intensity (1-10)", "Pain quality", "Zones",
            "Aura", "Nausea", "Light sensitivity", "Sound sensitivity",
            "Triggers", "Medication", "Food", "Notes",
        ],
        "yes": "Yes",
        "no": "No",
        "in_progress": "In progress",
        "datetime": "%Y-%m-%d %H:%M",
    },
    "it": {
        "headers": [
            "Inizio", "Fine", "Intensità (1-10)", "Qualità Dolore", "Zone",
            "Aura", "Nausea", "Fotofobia", "Fonofobia",
            "Trigger", "Farmaci", "Cibo", "Note",
        ],
        "yes": "Si",
        "no": "No",
        "in_progress": "In corso",
        "datetime": "%d/%m/%Y %H:%M",
    },
}


def episodes_to_csv(episodes: Iterable[Episode], tz: Optional[tzinfo] = None, locale: str = "en") -> str:
    """One row per episode, UTF-8 BOM prefixed so spreadsheets pick the encoding."""
    labels = CSV_LABELS.get(locale, CSV_LABELS["en"])

    def when(dt):
        return dt.astimezone(tz).strftime(labels["datetime"]) if dt else ""

    def yes_no(flag):
        return labels["yes"] if flag else labels["no"]

    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(labels["headers"])
    for ep in episodes:
        quality = ep.quality.value if locale == "it" else ep.quality.label
        zones = [z.value if locale == "it" and isinstance(z, Zone) else location_label(z) for z in ep.locations]
        writer.writerow([
            when(ep.started_at),
            when(ep.ended_at) if ep.ended_at else labels["in_progress"],
            ep.intensity,
            quality,
            ", ".join(zones),
            yes_no(ep.has_aura),
            yes_no(ep.has_nausea),
            yes_no(ep.is_light_sensitive),
            yes_no(ep.is_sound_sensitive),
            ", ".join(ep.triggers),
            ep.medication,
            ep.food,
            ep.notes,
        ])
    return CSV_BOM + buf.getvalue()
