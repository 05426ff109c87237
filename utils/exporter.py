import io
import json
from typing import List, Dict, Any
from utils.common import utc_now_iso

def generate_backup_json(progress: Dict[str, Any], lessons: List[Dict[str, Any]]) -> io.BytesIO:
    """Generates a downloadable JSON backup of a student's progress and the lesson catalogue."""
    data = {
        "progress": {
            "xp": progress.get("xp", 0),
            "streak": progress.get("streak", 0),
            "completed_lesson_ids": list(progress.get("completed_lesson_ids") or []),
        },
        "lessons": [{
            "title": lesson["title"],
            "description": lesson.get("description", ""),
            "difficulty": lesson.get("difficulty", ""),
            "xp_reward": lesson["xp_reward"],
            "questions": lesson.get("questions", []),
        } for lesson in lessons],
        "export_date": utc_now_iso(),
    }

    buffer = io.BytesIO(json.dumps(data, indent=2, ensure_ascii=False).encode("utf-8"))
    buffer.seek(0)
    return buffer


def backup_filename() -> str:
    return f"polymer-chemistry-backup-{utc_now_iso()[:10]}.json"
