"""
Project Planner
Reads a project's task list (ids, time windows, dependencies, resources) from CSV,
derives schedule analytics, and draws a timeline chart as a PNG.

Features:
  - Free-form date parsing (20251013, 20251013+0800, 202510130800)
  - Resource allocation with partial-allocation flag (*) and override tables
  - Completion window, overlapping tasks, resource teams, effort breakdown
  - Opt-in dependency check (missing references and cycles)
  - Timeline layout geometry, rendered with matplotlib
  - Project CSV save and Excel workbook report

CSV formats:
  - Tasks: id,name,start,end,dependencies,resources
      e.g. 1,Initial research,20250915+0800,20251010+1800,,Ahmed*|Ayesha*|Mariam
  - Resources (optional): name,allocationFraction
      e.g. Ahmed,1.0  or  Ayesha,0.5
"""

import argparse
import csv
import io
import math
import os
import re
import sys
import zipfile
from datetime import datetime, timedelta

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
from matplotlib.patches import FancyBboxPatch, Rectangle
import numpy as np
import pandas as pd
from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font, PatternFill, Alignment, Border, Side


# ── Constants ────────────────────────────────────────────────────────────────

_DIR = os.path.dirname(os.path.abspath(__file__))
DEFAULT_OUTDIR = os.path.join(_DIR, "output")

TASK_COLUMNS = ["id", "name", "start", "end", "dependencies", "resources"]
OVERRIDE_COLUMNS = ["name", "allocation"]
TITLE_MARKER = "# Project Title"

DEFAULT_START_HOUR = 9
FULL_ALLOCATION = 1.0
PARTIAL_ALLOCATION = 0.5

# Task ids and dependency references are 32-bit signed integers
INT_MIN, INT_MAX = -2**31, 2**31 - 1
_INT_PATTERN = re.compile(r"[+-]?[0-9]+")

NO_DATA_MESSAGE = "No tasks available. Please add or upload tasks first."
NO_TIMELINE_MESSAGE = "No tasks to visualize."

# Timeline geometry, in pixels
LAYOUT = {
    "row_height": 28,
    "left_pad": 160,
    "top_pad": 50,
    "day_width": 16,
    "min_bar_width": 6,
    "row_offset": 10,
    "bar_inset": 12,
    "extra_days": 10,
    "right_margin": 200,
    "bottom_margin": 80,
    "label_chars": 26,
    "resource_label_chars": 40,
    "title_chars": 80,
    "date_label_y": 20,
}

STYLE = {
    "font_family": ["Segoe UI", "DejaVu Sans"],
    "title_size": 16,
    "label_size": 9.5,
    "small_size": 7.5,
    "bg_color": "#FFFFFF",
    "header_bg": "#F5F5F5",
    "axis_color": "#808080",
    "grid_color": "#C0C0C0",
    "text_primary": "#1E1E1E",
    "text_secondary": "#404040",
    "text_muted": "#999999",
    "bar_fill": "#DCEBFF",
    "bar_edge": "#2878C8",
    "dependency_color": "#B45050",
    "effort_color": "#2196F3",
    "dpi": 100,
}


# ── Errors ───────────────────────────────────────────────────────────────────

class PlannerError(ValueError):
    """Base class for bad project input."""


class DateFormatError(PlannerError):
    """Date text is blank or does not reduce to 8 or 12 digits."""


class ValidationError(PlannerError):
    """Task end is not after its start."""


class MalformedRowError(PlannerError):
    """Task row has fewer than six fields."""


class OverrideParseError(PlannerError):
    """Resource override has a non-numeric allocation fraction."""


# ── Helpers ──────────────────────────────────────────────────────────────────

def clean_str(val):
    """Return stripped string or empty string for NaN/None."""
    if val is None or (isinstance(val, float) and math.isnan(val)):
        return ""
    return str(val).strip()


def truncate(text, max_chars):
    """Cut text to max_chars, ending with an ellipsis when shortened."""
    if len(text) <= max_chars:
        return text
    return text[:max(0, max_chars - 1)] + "…"


def format_iso(dt):
    """Minute-precision ISO text used in the reports (2025-01-01T09:00)."""
    return dt.isoformat(timespec="minutes")


class _TeeWriter:
    """Write to two streams simultaneously (for summary.txt capture)."""
    def __init__(self, a, b):
        self.a, self.b = a, b
    def write(self, data):
        self.a.write(data)
        self.b.write(data)
    def flush(self):
        self.a.flush()
        self.b.flush()


# ── Temporal Normalizer ──────────────────────────────────────────────────────

def parse_timestamp(val):
    """Parse free-form date text into a naive datetime.

    Every non-digit character is dropped. Eight digits are YYYYMMDD at 09:00,
    twelve digits are YYYYMMDDHHMM. A "+HHMM" suffix is not a timezone: its
    digits simply extend the date, so "20251013+0800" is 08:00 on that day.
    """
    text = clean_str(val)
    if not text:
        raise DateFormatError("Date is blank")
    digits = re.sub(r"[^0-9]", "", text)
    if len(digits) == 8:
        hour, minute = DEFAULT_START_HOUR, 0
    elif len(digits) == 12:
        hour, minute = int(digits[8:10]), int(digits[10:12])
    else:
        raise DateFormatError(
            f"Cannot parse date: {text!r}. Expected YYYYMMDD, YYYYMMDD+HHMM or YYYYMMDDHHMM")
    try:
        return datetime(int(digits[0:4]), int(digits[4:6]), int(digits[6:8]), hour, minute)
    except ValueError as e:
        raise DateFormatError(f"Cannot parse date: {text!r} ({e})") from e


def format_timestamp(dt, short=False):
    """Inverse of parse_timestamp. short=True gives YYYYMMDD for the 09:00 default."""
    if short and dt.hour == DEFAULT_START_HOUR and dt.minute == 0:
        return dt.strftime("%Y%m%d")
    return dt.strftime("%Y%m%d%H%M")


# ── Resource Resolver ────────────────────────────────────────────────────────

def put_override(overrides, name, fraction):
    """Add or replace an override under the trimmed resource name."""
    overrides[name.strip()] = fraction


def resolve_allocation(name, flagged, overrides):
    """An override always wins; otherwise 0.5 for a flagged name and 1.0 for the rest."""
    key = name.strip()
    if overrides and key in overrides:
        return overrides[key]
    return PARTIAL_ALLOCATION if flagged else FULL_ALLOCATION


def parse_resources(raw, overrides=None):
    """Split a resource list on runs of '|' or ',' into allocation entries.

    A trailing '*' flags partial allocation and is removed from the name.
    Order and duplicates are kept. Never raises.
    """
    text = clean_str(raw)
    if not text:
        return []
    entries = []
    for token in re.split(r"[|,]+", text):
        token = token.strip()
        if not token:
            continue
        flagged = token.endswith("*")
        name = token[:-1].strip() if flagged else token
        if not name:
            continue
        entries.append({"name": name, "allocation": resolve_allocation(name, flagged, overrides)})
    return entries


def format_resource(entry):
    """Display form: the bare name at full allocation, name* otherwise."""
    if entry["allocation"] == FULL_ALLOCATION:
        return entry["name"]
    return entry["name"] + "*"


def parse_override(cells):
    """Turn a (name, fraction) record into a pair, or raise OverrideParseError."""
    name = clean_str(cells[0])
    raw = clean_str(cells[1])
    try:
        fraction = float(raw)
    except ValueError as e:
        raise OverrideParseError(f"Invalid allocation for '{name}': {raw!r}") from e
    if not math.isfinite(fraction):
        raise OverrideParseError(f"Invalid allocation for '{name}': {raw!r}")
    return name, fraction


# ── Dependency Parser ────────────────────────────────────────────────────────

def parse_dependencies(raw):
    """Split on runs of comma, semicolon or whitespace; keep the integer tokens."""
    text = clean_str(raw)
    if not text:
        return []
    ids = []
    for token in re.split(r"[;,\s]+", text):
        value = _parse_int(token)
        if value is not None:
            ids.append(value)
    return ids


def _parse_int(text):
    """Signed decimal integer within 32-bit range, or None."""
    if not _INT_PATTERN.fullmatch(text):
        return None
    value = int(text)
    if not INT_MIN <= value <= INT_MAX:
        return None
    return value


# ── Task Builder ─────────────────────────────────────────────────────────────

def parse_id(val):
    """Integer id, or 0 when the cell is not a number."""
    value = _parse_int(clean_str(val))
    return 0 if value is None else value


def build_task(row, overrides=None):
    """Build one validated task dict from a six-field raw row."""
    if len(row) < len(TASK_COLUMNS):
        raise MalformedRowError(
            f"Expected {len(TASK_COLUMNS)} fields ({','.join(TASK_COLUMNS)}), got {len(row)}")
    task_id = parse_id(row[0])
    start = parse_timestamp(row[2])
    end = parse_timestamp(row[3])
    if end <= start:
        raise ValidationError(
            f"End must be after Start ({format_iso(start)} -> {format_iso(end)})")
    return {
        "id": task_id,
        "name": clean_str(row[1]),
        "start": start,
        "end": end,
        "dependencies": parse_dependencies(row[4]),
        "resources": parse_resources(row[5], overrides),
    }


def build_task_results(rows, overrides=None):
    """Build every row, returning one {"row", "task", "error"} result per row (1-based)."""
    results = []
    for row_num, row in enumerate(rows, start=1):
        try:
            results.append({"row": row_num, "task": build_task(row, overrides), "error": None})
        except PlannerError as e:
            results.append({"row": row_num, "task": None, "error": e})
    return results


def sort_tasks(tasks):
    """Collection order: start ascending, then id ascending."""
    return sorted(tasks, key=lambda t: (t["start"], t["id"]))


def build_tasks(rows, overrides=None):
    """Build the ordered task collection. Rows that fail are left out."""
    results = build_task_results(rows, overrides)
    return sort_tasks([r["task"] for r in results if r["task"] is not None])


def task_to_row(task):
    """Six text fields that build_task turns back into an equal task."""
    return [
        str(task["id"]),
        task["name"],
        format_timestamp(task["start"]),
        format_timestamp(task["end"]),
        ",".join(str(d) for d in task["dependencies"]),
        "|".join(format_resource(r) for r in task["resources"]),
    ]


# ── Schedule Analysis ────────────────────────────────────────────────────────

def duration_hours(task):
    """Whole hours from start to end (partial hours are dropped)."""
    return (task["end"] - task["start"]) // timedelta(hours=1)


def completion_window(tasks):
    """Earliest start to latest end. None for an empty collection."""
    if not tasks:
        return None
    start = min(t["start"] for t in tasks)
    end = max(t["end"] for t in tasks)
    hours = (end - start) // timedelta(hours=1)
    return {"start": start, "end": end, "hours": hours, "days": hours / 24.0}


def ranges_overlap(a_start, a_end, b_start, b_end):
    """Strict overlap: touching endpoints do not count."""
    return a_start < b_end and b_start < a_end


def find_overlaps(tasks):
    """All overlapping pairs (a, b) with a before b in collection order."""
    pairs = []
    for i in range(len(tasks)):
        for j in range(i + 1, len(tasks)):
            a, b = tasks[i], tasks[j]
            if ranges_overlap(a["start"], a["end"], b["start"], b["end"]):
                pairs.append((a, b))
    return pairs


def group_by_resource(tasks):
    """Resource name -> tasks carrying it. Names sorted, tasks in collection order."""
    groups = {}
    for task in tasks:
        for entry in task["resources"]:
            groups.setdefault(entry["name"], []).append(task)
    return {name: groups[name] for name in sorted(groups)}


def effort_by_resource(tasks):
    """Resource name -> sum of duration_hours x allocation over its assignments."""
    effort = {}
    for task in tasks:
        hours = duration_hours(task)
        for entry in task["resources"]:
            effort[entry["name"]] = effort.get(entry["name"], 0.0) + hours * entry["allocation"]
    return {name: effort[name] for name in sorted(effort)}


def check_dependencies(tasks):
    """Opt-in dependency check.

    Returns {"missing": [(task_id, dep_id), ...], "cycles": [[id, ...], ...]}.
    Tasks sharing an id are merged into one graph node.
    """
    graph = {}
    for task in tasks:
        graph.setdefault(task["id"], [])
        graph[task["id"]].extend(task["dependencies"])

    missing = []
    for task in tasks:
        for dep in task["dependencies"]:
            if dep not in graph and (task["id"], dep) not in missing:
                missing.append((task["id"], dep))

    WHITE, GRAY, BLACK = 0, 1, 2
    color = {node: WHITE for node in graph}
    path = []
    cycles = []

    def dfs(node):
        color[node] = GRAY
        path.append(node)
        for dep in graph[node]:
            if dep not in graph:
                continue
            if color[dep] == GRAY:
                cycles.append(path[path.index(dep):])
            elif color[dep] == WHITE:
                dfs(dep)
        path.pop()
        color[node] = BLACK

    for node in sorted(graph):
        if color[node] == WHITE:
            dfs(node)
    return {"missing": missing, "cycles": cycles}


# ── Reports ──────────────────────────────────────────────────────────────────

def format_completion_report(tasks):
    window = completion_window(tasks)
    if window is None:
        return NO_DATA_MESSAGE
    return (
        "Project completion window\n"
        f"Start: {format_iso(window['start'])}\n"
        f"End:   {format_iso(window['end'])}\n"
        f"Duration: {window['hours']} hours ({window['days']:.2f} days)"
    )


def format_overlap_report(tasks):
    if not tasks:
        return NO_DATA_MESSAGE
    lines = ["Overlapping tasks (pairs):"]
    pairs = find_overlaps(tasks)
    for a, b in pairs:
        lines.append(f"- #{a['id']} {a['name']}  ↔  #{b['id']} {b['name']}")
    if not pairs:
        lines.append("(none)")
    return "\n".join(lines)


def format_resource_report(tasks):
    if not tasks:
        return NO_DATA_MESSAGE
    lines = ["Resources and teams:"]
    for name, members in group_by_resource(tasks).items():
        lines.append("")
        lines.append(f"{name}:")
        for t in members:
            lines.append(f"  - #{t['id']} {t['name']}  "
                         f"({format_iso(t['start'])} → {format_iso(t['end'])})")
    return "\n".join(lines)


def format_effort_report(tasks):
    if not tasks:
        return NO_DATA_MESSAGE
    lines = [
        "Effort breakdown (resource-wise):",
        f"{'Resource':<18} Effort Hours",
        "------------------  ------------",
    ]
    for name, hours in effort_by_resource(tasks).items():
        lines.append(f"{name:<18}  {hours:.2f}")
    return "\n".join(lines)


def format_dependency_report(tasks):
    if not tasks:
        return NO_DATA_MESSAGE
    result = check_dependencies(tasks)
    lines = ["Dependency check:"]
    if result["missing"]:
        lines.append("  Missing references:")
        for task_id, dep in result["missing"]:
            lines.append(f"    #{task_id} depends on #{dep}, which does not exist")
    if result["cycles"]:
        lines.append("  Cycles:")
        for cycle in result["cycles"]:
            lines.append("    " + " -> ".join(f"#{n}" for n in cycle + cycle[:1]))
    if not result["missing"] and not result["cycles"]:
        lines.append("  (no problems found)")
    return "\n".join(lines)


ANALYSES = {
    "completion": format_completion_report,
    "overlaps": format_overlap_report,
    "teams": format_resource_report,
    "effort": format_effort_report,
}


# ── Timeline Layout ──────────────────────────────────────────────────────────

def layout_timeline(tasks, layout=None):
    """Map a task collection onto pixel geometry for the timeline chart.

    Returns None for an empty collection. Otherwise a dict with the canvas
    size, one grid line per calendar day from the first start date to the
    last end date, and one bar per task in collection order.
    """
    if not tasks:
        return None
    cfg = LAYOUT if layout is None else layout
    day_w = cfg["day_width"]
    row_h = cfg["row_height"]
    left, top = cfg["left_pad"], cfg["top_pad"]
    bar_h = row_h - cfg["bar_inset"]

    min_date = min(t["start"].date() for t in tasks)
    max_date = max(t["end"].date() for t in tasks)
    span_days = (max_date - min_date).days
    width = left + (span_days + cfg["extra_days"]) * day_w + cfg["right_margin"]
    height = top + len(tasks) * row_h + cfg["bottom_margin"]

    grid = []
    for offset in range(span_days + 1):
        day = min_date + timedelta(days=offset)
        x = left + offset * day_w
        grid.append({
            "x": x, "y1": top, "y2": height,
            "date": day, "label": day.isoformat(),
            "label_x": x + 2, "label_y": cfg["date_label_y"],
        })

    bars = []
    y = top + cfg["row_offset"]
    for task in tasks:
        x1 = left + (task["start"].date() - min_date).days * day_w
        x2 = left + (task["end"].date() - min_date).days * day_w + day_w / 2
        has_deps = bool(task["dependencies"])
        marker = None
        if has_deps:
            marker = {"x": x1 - 3, "y": y + 5, "width": 3, "height": row_h - 18}
        resource_label = ", ".join(format_resource(r) for r in task["resources"])
        bars.append({
            "task_id": task["id"],
            "x": x1,
            "y": y,
            "width": max(cfg["min_bar_width"], x2 - x1),
            "height": bar_h,
            "label": truncate(f"#{task['id']} {task['name']}", cfg["label_chars"]),
            "label_x": 10,
            "label_y": y + 14,
            "has_dependencies": has_deps,
            "marker": marker,
            "resource_label": truncate(resource_label, cfg["resource_label_chars"]),
            "resource_x": x1 + 6,
            "resource_y": y + bar_h - 6,
        })
        y += row_h

    return {
        "width": width,
        "height": height,
        "top_pad": top,
        "min_date": min_date,
        "max_date": max_date,
        "grid": grid,
        "bars": bars,
    }


# ── Rendering ────────────────────────────────────────────────────────────────

def apply_style():
    """Configure matplotlib rcParams for consistent styling."""
    plt.rcParams.update({
        "font.family": STYLE["font_family"],
        "font.size": STYLE["label_size"],
        "axes.facecolor": STYLE["bg_color"],
        "figure.facecolor": STYLE["bg_color"],
        "axes.edgecolor": STYLE["grid_color"],
        "axes.linewidth": 0.8,
        "xtick.color": STYLE["text_secondary"],
        "ytick.color": STYLE["text_secondary"],
        "text.color": STYLE["text_primary"],
    })


def style_axes(ax, title="", xlabel=""):
    """Apply consistent axis styling to a chart."""
    if title:
        ax.set_title(title, fontsize=STYLE["title_size"], fontweight="bold",
                     color=STYLE["text_primary"], pad=12, loc="left")
    if xlabel:
        ax.set_xlabel(xlabel, fontsize=STYLE["label_size"], color=STYLE["text_secondary"])
    ax.spines["top"].set_visible(False)
    ax.spines["right"].set_visible(False)
    ax.grid(axis="x", alpha=0.3, linewidth=0.5, color=STYLE["grid_color"])
    ax.set_axisbelow(True)


def _save_figure(fig, output_path):
    out_dir = os.path.dirname(output_path)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)
    fig.savefig(output_path, dpi=STYLE["dpi"], facecolor=STYLE["bg_color"])
    plt.close(fig)


def render_timeline(layout, output_path, title=""):
    """Draw the timeline layout primitives into a PNG. Coordinates are pixels, y down."""
    apply_style()
    dpi = STYLE["dpi"]

    if layout is None:
        fig = plt.figure(figsize=(4, 1), dpi=dpi)
        ax = fig.add_axes([0, 0, 1, 1])
        ax.set_axis_off()
        ax.text(0.05, 0.5, NO_TIMELINE_MESSAGE, color=STYLE["text_secondary"],
                va="center", ha="left", transform=ax.transAxes)
        _save_figure(fig, output_path)
        return

    width, height = layout["width"], layout["height"]
    fig = plt.figure(figsize=(width / dpi, height / dpi), dpi=dpi)
    ax = fig.add_axes([0, 0, 1, 1])
    ax.set_xlim(0, width)
    ax.set_ylim(height, 0)
    ax.set_axis_off()

    # Header band
    top = layout["top_pad"]
    ax.add_patch(Rectangle((0, 0), width, top, facecolor=STYLE["header_bg"],
                           edgecolor="none", zorder=0))
    ax.plot([0, width], [top, top], color=STYLE["axis_color"], linewidth=1, zorder=1)
    if title:
        ax.text(10, top / 2, truncate(title, LAYOUT["title_chars"]), fontsize=STYLE["label_size"] + 1,
                fontweight="bold", va="center", ha="left", color=STYLE["text_primary"])

    for line in layout["grid"]:
        ax.plot([line["x"], line["x"]], [line["y1"], line["y2"]],
                color=STYLE["grid_color"], linewidth=0.6, zorder=1)
        ax.text(line["label_x"], top - 4, line["label"], rotation=90,
                fontsize=STYLE["small_size"] - 1.5, fontweight="bold",
                color=STYLE["text_secondary"], va="bottom", ha="left")

    for bar in layout["bars"]:
        ax.text(bar["label_x"], bar["label_y"], bar["label"], fontsize=STYLE["small_size"] + 1,
                color=STYLE["text_primary"], va="baseline", ha="left")
        rounding = min(5, bar["width"] / 2)
        ax.add_patch(FancyBboxPatch(
            (bar["x"], bar["y"]), bar["width"], bar["height"],
            boxstyle=f"round,pad=0,rounding_size={rounding}",
            facecolor=STYLE["bar_fill"], edgecolor=STYLE["bar_edge"],
            linewidth=1.0, zorder=3,
        ))
        if bar["marker"]:
            m = bar["marker"]
            ax.add_patch(Rectangle((m["x"], m["y"]), m["width"], m["height"],
                                   facecolor=STYLE["dependency_color"], edgecolor="none", zorder=4))
        if bar["resource_label"]:
            ax.text(bar["resource_x"], bar["resource_y"], bar["resource_label"],
                    fontsize=STYLE["small_size"], color=STYLE["text_primary"],
                    va="baseline", ha="left", zorder=5, clip_on=True)

    _save_figure(fig, output_path)


def render_effort(effort, output_path, title="Effort breakdown"):
    """Horizontal bar chart of effort hours per resource."""
    if not effort:
        print("  No effort data. Check: tasks have resources assigned.")
        return
    apply_style()
    names = list(effort.keys())
    hours = np.array([effort[n] for n in names])
    y_positions = np.arange(len(names))

    fig_height = max(3, len(names) * 0.45 + 1.5)
    fig, ax = plt.subplots(figsize=(10, fig_height), dpi=STYLE["dpi"])
    ax.barh(y_positions, hours, height=0.6, color=STYLE["effort_color"], alpha=0.85, zorder=3)
    ax.set_yticks(y_positions)
    ax.set_yticklabels(names)
    ax.invert_yaxis()
    for y, value in zip(y_positions, hours):
        ax.text(value, y, f"  {value:.1f}h", va="center", ha="left",
                fontsize=STYLE["small_size"], color=STYLE["text_secondary"])
    ax.set_xlim(0, max(hours.max() * 1.15, 1))
    style_axes(ax, title=title, xlabel="Effort hours")
    fig.tight_layout()
    _save_figure(fig, output_path)


# ── Data Loading ─────────────────────────────────────────────────────────────

def _new_summary():
    return {"accepted": 0, "skipped": 0, "first_error": None}


def _record_skip(summary, error):
    summary["skipped"] += 1
    if summary["first_error"] is None:
        summary["first_error"] = error


def _read_lines(filepath):
    """Yield (line_num, text) for each non-blank physical line of a text file."""
    with open(filepath, encoding="utf-8-sig") as f:
        for line_num, line in enumerate(f, start=1):
            text = line.rstrip("\r\n")
            if text.strip():
                yield line_num, text


def _split_line(text):
    """CSV cells of a single line. A quote left open ends at the line end."""
    return next(csv.reader([text]))


def load_task_rows(filepath):
    """Read raw task rows from a CSV file.

    Returns (title, rows, summary). Each physical line is one record. Blank
    lines, '#' comments and the column header are skipped; the
    '# Project Title' line supplies the title. Rows with fewer than six cells
    are counted in the summary and skipped.
    """
    title = ""
    rows = []
    summary = _new_summary()
    for line_num, text in _read_lines(filepath):
        if text.lstrip().startswith("#"):
            cells = _split_line(text.strip())
            if cells[0].strip() == TITLE_MARKER and len(cells) > 1:
                title = cells[1].strip()
            continue
        cells = _split_line(text)
        if not any(c.strip() for c in cells) or cells[0].strip().lower() == TASK_COLUMNS[0]:
            continue
        if len(cells) < len(TASK_COLUMNS):
            error = MalformedRowError(
                f"Line {line_num}: expected {len(TASK_COLUMNS)} fields, got {len(cells)}")
            print(f"  WARNING: Could not parse {error}")
            _record_skip(summary, error)
            continue
        rows.append(cells[:len(TASK_COLUMNS)])
        summary["accepted"] += 1
    return title, rows, summary


def load_resource_overrides(filepath, overrides):
    """Read name,allocationFraction records into the override table.

    Bad fractions are skipped and counted; the rest still load. Returns the summary.
    """
    summary = _new_summary()
    for line_num, text in _read_lines(filepath):
        if text.lstrip().startswith("#"):
            continue
        cells = _split_line(text)
        if len(cells) < 2 or not cells[0].strip() or cells[0].strip().lower() == OVERRIDE_COLUMNS[0]:
            continue
        try:
            name, fraction = parse_override(cells)
        except OverrideParseError as e:
            print(f"  WARNING: Resources line {line_num}: {e}, skipping.")
            _record_skip(summary, e)
            continue
        put_override(overrides, name, fraction)
        summary["accepted"] += 1
    return summary


def load_workbook_rows(filepath):
    """Read an exported workbook back.

    Returns (title, rows, overrides, summary). The title comes from the
    workbook properties. The summary counts task rows and override rows
    together; bad override fractions are skipped and counted.
    """
    wb = load_workbook(filepath, read_only=True)
    title = clean_str(wb.properties.title)
    wb.close()

    summary = _new_summary()
    df = pd.read_excel(filepath, sheet_name="Tasks", dtype=str)
    df.columns = df.columns.str.strip().str.lower()
    missing = set(TASK_COLUMNS) - set(df.columns)
    if missing:
        raise MalformedRowError(
            f"Tasks sheet is missing column(s): {', '.join(sorted(missing))}. "
            f"Found: {', '.join(df.columns)}")
    rows = []
    for _, row in df.iterrows():
        cells = [clean_str(row[col]) for col in TASK_COLUMNS]
        if any(cells):
            rows.append(cells)
            summary["accepted"] += 1

    overrides = {}
    try:
        res_df = pd.read_excel(filepath, sheet_name="Resources")
    except ValueError:
        # No Resources sheet
        return title, rows, overrides, summary
    res_df.columns = res_df.columns.str.strip().str.lower()
    for idx, row in res_df.iterrows():
        try:
            name, fraction = parse_override([row.get("name"), row.get("allocation")])
        except OverrideParseError as e:
            print(f"  WARNING: Resources row {idx + 2}: {e}, skipping.")
            _record_skip(summary, e)
            continue
        if name:
            put_override(overrides, name, fraction)
            summary["accepted"] += 1
    return title, rows, overrides, summary


def sample_project():
    """The bundled example: (title, rows, overrides)."""
    rows = [
        ["1", "Initial research and analysis", "20250915+0800", "20251010+1800", "", "Ahmed*|Ayesha*|Mariam"],
        ["2", "Develop program content and materials", "20251013+0800", "20251031+1159", "1", "Ayesha*|Mariam"],
        ["3", "Infrastructure planning", "20251013+0800", "20251017+1800", "1", "Ahmed"],
        ["4", "Infrastructure setup and review", "20251020+0800", "20251031+1800", "3", "Ahmed"],
        ["5", "Program rollout", "20251103+0900", "20251215+1700", "2,4", "Ahmed*|Mariam"],
    ]
    overrides = {"Ahmed": 1.0, "Ayesha": 0.5, "Mariam": 1.0}
    return "Sample Program Launch", rows, overrides


# ── Saving ───────────────────────────────────────────────────────────────────

def format_project_csv(title, rows):
    """Serialized project: title comment line, column header, one CSV line per task."""
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow([TITLE_MARKER, title or ""])
    writer.writerow(TASK_COLUMNS)
    for row in rows:
        writer.writerow([clean_str(c) for c in row[:len(TASK_COLUMNS)]])
    return buf.getvalue()


def save_project(filepath, title, rows):
    """Write the serialized project, adding a .csv extension when missing. Returns the path."""
    if not filepath.lower().endswith(".csv"):
        filepath += ".csv"
    out_dir = os.path.dirname(filepath)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)
    with open(filepath, "w", newline="", encoding="utf-8") as f:
        f.write(format_project_csv(title, rows))
    return filepath


def export_workbook(output_path, title, tasks, overrides=None):
    """Write an Excel report with Tasks, Resources, Effort and Overlaps sheets."""
    wb = Workbook()

    header_font = Font(bold=True, color="FFFFFF", size=11)
    header_fill = PatternFill(start_color="2E3B4E", end_color="2E3B4E", fill_type="solid")
    header_alignment = Alignment(horizontal="center", vertical="center")
    thin_border = Border(
        left=Side(style="thin"), right=Side(style="thin"),
        top=Side(style="thin"), bottom=Side(style="thin"),
    )

    def style_sheet(ws, widths):
        for cell in ws[1]:
            cell.font = header_font
            cell.fill = header_fill
            cell.alignment = header_alignment
            cell.border = thin_border
        for row in ws.iter_rows(min_row=2, max_row=ws.max_row):
            for cell in row:
                cell.border = thin_border
        for col, width in widths.items():
            ws.column_dimensions[col].width = width
        ws.freeze_panes = "A2"

    # ── Sheet 1: Tasks ──
    ws_tasks = wb.active
    ws_tasks.title = "Tasks"
    ws_tasks.append(TASK_COLUMNS)
    for task in tasks:
        ws_tasks.append(task_to_row(task))
    style_sheet(ws_tasks, {"A": 8, "B": 40, "C": 16, "D": 16, "E": 16, "F": 36})

    # ── Sheet 2: Resources ──
    ws_res = wb.create_sheet("Resources")
    ws_res.append(OVERRIDE_COLUMNS)
    for name, fraction in sorted((overrides or {}).items()):
        ws_res.append([name, fraction])
    style_sheet(ws_res, {"A": 24, "B": 12})

    # ── Sheet 3: Effort ──
    ws_effort = wb.create_sheet("Effort")
    ws_effort.append(["resource", "effort_hours"])
    for name, hours in effort_by_resource(tasks).items():
        ws_effort.append([name, round(hours, 2)])
    style_sheet(ws_effort, {"A": 24, "B": 14})

    # ── Sheet 4: Overlaps ──
    ws_overlaps = wb.create_sheet("Overlaps")
    ws_overlaps.append(["task_a", "name_a", "task_b", "name_b"])
    for a, b in find_overlaps(tasks):
        ws_overlaps.append([a["id"], a["name"], b["id"], b["name"]])
    style_sheet(ws_overlaps, {"A": 8, "B": 40, "C": 8, "D": 40})

    if title:
        wb.properties.title = title
    out_dir = os.path.dirname(output_path)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)
    wb.save(output_path)


# ── Main ─────────────────────────────────────────────────────────────────────

def print_load_summary(label, summary):
    """One line per file: records accepted, records skipped and the first error."""
    line = f"  {label}: {summary['accepted']} loaded"
    if summary["skipped"]:
        line += f", {summary['skipped']} skipped (first error: {summary['first_error']})"
    print(line)


def main():
    parser = argparse.ArgumentParser(
        description="Project Planner: schedule analytics and timeline chart from a task CSV"
    )
    parser.add_argument(
        "--input", default=None,
        help="Path to tasks CSV (id,name,start,end,dependencies,resources) or exported .xlsx"
    )
    parser.add_argument(
        "--resources", default=None,
        help="Path to resource overrides CSV (name,allocationFraction)"
    )
    parser.add_argument(
        "--demo", action="store_true",
        help="Use the bundled sample project instead of --input"
    )
    parser.add_argument(
        "--title", default=None,
        help="Project title (default: from the CSV title line)"
    )
    parser.add_argument(
        "--analysis", default=["all"], nargs="+",
        choices=["all"] + list(ANALYSES),
        help="Which analyses to print (default: all)"
    )
    parser.add_argument(
        "--check-deps", action="store_true",
        help="Report missing dependency references and dependency cycles"
    )
    parser.add_argument(
        "--outdir", default=DEFAULT_OUTDIR,
        help="Output directory for charts and summary.txt (default: output/)"
    )
    parser.add_argument(
        "--charts", default=["all"], nargs="+",
        choices=["all", "timeline", "effort", "none"],
        help="Which charts to generate (default: all)"
    )
    parser.add_argument(
        "--save", default=None,
        help="Write the project (title + task rows) to this CSV file"
    )
    parser.add_argument(
        "--xlsx", default=None,
        help="Write an Excel report (tasks, resources, effort, overlaps) to this file"
    )
    args = parser.parse_args()

    # Load
    overrides = {}
    if args.demo:
        title, rows, overrides = sample_project()
        print(f"Using sample project: {title}")
    else:
        if not args.input:
            parser.error("--input is required unless --demo is given")
        if not os.path.exists(args.input):
            print(f"Error: Input file not found: {args.input}")
            sys.exit(1)
        print(f"Loading tasks from: {args.input}")
        try:
            if args.input.lower().endswith(".xlsx"):
                title, rows, overrides, summary = load_workbook_rows(args.input)
                print_load_summary("Workbook records", summary)
            else:
                title, rows, summary = load_task_rows(args.input)
                print_load_summary("Tasks", summary)
        except (OSError, ValueError, zipfile.BadZipFile) as e:
            print(f"  ERROR: Could not read {args.input}: {e}")
            sys.exit(1)
    if args.title:
        title = args.title

    if args.resources:
        if not os.path.exists(args.resources):
            print(f"Error: Resources file not found: {args.resources}")
            sys.exit(1)
        try:
            summary = load_resource_overrides(args.resources, overrides)
        except (OSError, ValueError) as e:
            print(f"  ERROR: Could not read {args.resources}: {e}")
            sys.exit(1)
        print_load_summary("Resources loaded/overridden", summary)

    # Build
    results = build_task_results(rows, overrides)
    for r in results:
        if r["error"] is not None:
            print(f"  WARNING: Task row {r['row']}: {r['error']}, skipping.")
    tasks = sort_tasks([r["task"] for r in results if r["task"] is not None])
    print(f"  Valid tasks: {len(tasks)} of {len(rows)}")
    if not tasks:
        print(f"  ERROR: {NO_DATA_MESSAGE}")
        sys.exit(1)

    # Analyze (capture output for summary.txt)
    names = list(ANALYSES) if "all" in args.analysis else args.analysis
    summary_capture = io.StringIO()
    _orig_stdout = sys.stdout
    sys.stdout = _TeeWriter(_orig_stdout, summary_capture)
    try:
        print()
        if title:
            print(f"Project: {title}")
            print()
        for name in names:
            print(ANALYSES[name](tasks))
            print()
        if args.check_deps:
            print(format_dependency_report(tasks))
            print()
    finally:
        sys.stdout = _orig_stdout

    # Render
    charts = args.charts
    gen_all = "all" in charts
    output_files = []
    if gen_all or "timeline" in charts:
        timeline_path = os.path.join(args.outdir, "timeline.png")
        render_timeline(layout_timeline(tasks), timeline_path, title=title)
        output_files.append(timeline_path)
    if gen_all or "effort" in charts:
        effort = effort_by_resource(tasks)
        if effort:
            effort_path = os.path.join(args.outdir, "effort.png")
            render_effort(effort, effort_path, title=f"Effort breakdown{f' - {title}' if title else ''}")
            output_files.append(effort_path)

    os.makedirs(args.outdir, exist_ok=True)
    summary_path = os.path.join(args.outdir, "summary.txt")
    with open(summary_path, "w", encoding="utf-8") as sf:
        sf.write(summary_capture.getvalue())
    output_files.append(summary_path)

    if args.save:
        output_files.append(save_project(args.save, title, rows))
    if args.xlsx:
        export_workbook(args.xlsx, title, tasks, overrides)
        output_files.append(args.xlsx)

    print("  Output:")
    for f in output_files:
        print(f"    {os.path.abspath(f)}")
    print("\nDone.")


if __name__ == "__main__":
    main()
