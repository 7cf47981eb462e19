from datetime import date
from typing import List

def semester_for(d: date) -> str:
    """
    Academic semester label for a date (datetimes work too).
    July-December -> "Odd {y}-{y+1}", January-June -> "Even {y-1}-{y}".
    """
    y = d.year
    if d.month >= 7:
        return f"Odd {y}-{y + 1}"
    return f"Even {y - 1}-{y}"

def recent_semesters(today: date, years: int = 3) -> List[str]:
    """Newest first, starting at the semester containing `today`."""
    out: List[str] = []
    label = semester_for(today)
    kind, span = label.split(" ")
    start = int(span.split("-")[0])
    while len(out) < years * 2:
        out.append(f"{kind} {start}-{start + 1}")
        if kind == "Odd":
            kind = "Even"
            start -= 1
        else:
            kind = "Odd"
    return out
