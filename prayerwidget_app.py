#!/usr/bin/env python3
"""
Prayer Widget
Always-on-top desktop widget driven by the prayer widget engine:
  - Current prayer and next prayer
  - Live countdown to the next prayer boundary
  - Hijri and Gregorian date footer
  - Today's five prayer times
Falls back to logging each frame when no display is available.
"""

import dataclasses
import logging
import threading
import time
import tkinter as tk
from tkinter import messagebox

from prayerwidget.engine import PrayerWidgetEngine
from prayerwidget.prayer_api import PRAYER_NAMES
from prayerwidget.render import LogRenderer, RenderState
from prayerwidget.settings import SCHOOLS, load_settings, with_detected_location

logger = logging.getLogger("prayerwidget")

# ──────────────────────────────────────────────────────────────────────────────
# Theme constants
# ──────────────────────────────────────────────────────────────────────────────
BG_DARK = "#0d1117"
BG_CARD = "#161b22"
BG_HIGHLIGHT = "#1a3a2a"
BORDER_COLOR = "#2ea043"
ACCENT_GOLD = "#f0c040"
ACCENT_GREEN = "#3fb950"
TEXT_WHITE = "#e6edf3"
TEXT_DIM = "#8b949e"
TEXT_RED = "#ff6b6b"

FONT_PIXEL = ("Courier", 10, "bold")
FONT_PIXEL_SM = ("Courier", 8)
FONT_PIXEL_LG = ("Courier", 14, "bold")
FONT_CLOCK = ("Courier", 22, "bold")

WINDOW_W = 320
WINDOW_H = 300

REFRESH_MS = 1000  # countdown redraw interval


class PrayerWidgetApp:
    def __init__(self, root: tk.Tk):
        self.root = root
        self._drag_x = 0
        self._drag_y = 0
        self._frame: RenderState | None = None

        self._setup_window()
        self._build_ui()
        self.engine = PrayerWidgetEngine(self.render, settings=with_detected_location(load_settings()))
        self.engine.start()
        self._tick()

    # ──────────────────────────────────────────────────────────────────────
    # Window setup
    # ──────────────────────────────────────────────────────────────────────
    def _setup_window(self):
        root = self.root
        root.title("Prayer Widget")
        root.configure(bg=BG_DARK)
        root.resizable(False, False)
        root.overrideredirect(True)
        root.attributes("-topmost", True)

        x = root.winfo_screenwidth() - WINDOW_W - 40
        y = (root.winfo_screenheight() - WINDOW_H) // 2
        root.geometry(f"{WINDOW_W}x{WINDOW_H}+{x}+{y}")

        root.bind("<ButtonPress-1>", self._on_drag_start)
        root.bind("<B1-Motion>", self._on_drag_motion)

    def _on_drag_start(self, event):
        self._drag_x = event.x_root - self.root.winfo_x()
        self._drag_y = event.y_root - self.root.winfo_y()

    def _on_drag_motion(self, event):
        self.root.geometry(f"+{event.x_root - self._drag_x}+{event.y_root - self._drag_y}")

    # ──────────────────────────────────────────────────────────────────────
    # UI construction
    # ──────────────────────────────────────────────────────────────────────
    def _build_ui(self):
        outer = tk.Frame(self.root, bg=BORDER_COLOR, bd=0)
        outer.pack(fill=tk.BOTH, expand=True, padx=2, pady=2)
        inner = tk.Frame(outer, bg=BG_DARK, bd=0)
        inner.pack(fill=tk.BOTH, expand=True, padx=1, pady=1)

        title_bar = tk.Frame(inner, bg=BG_CARD, height=28)
        title_bar.pack(fill=tk.X, side=tk.TOP)
        title_bar.pack_propagate(False)
        tk.Label(title_bar, text="  🕌  PRAYER WIDGET", font=FONT_PIXEL, fg=ACCENT_GOLD, bg=BG_CARD).pack(side=tk.LEFT)
        for text, fg, command in (
            (" ✕ ", TEXT_RED, self._close),
            (" ↻ ", ACCENT_GREEN, self.engine_sync),
            (" ⚙ ", TEXT_DIM, self._show_location_dialog),
        ):
            tk.Button(
                title_bar, text=text, font=FONT_PIXEL_SM, fg=fg, bg=BG_CARD,
                activeforeground=TEXT_WHITE, activebackground=BG_HIGHLIGHT,
                bd=0, cursor="hand2", command=command,
            ).pack(side=tk.RIGHT, padx=2, pady=2)

        self.lbl_current = tk.Label(inner, text="…", font=FONT_PIXEL_LG, fg=ACCENT_GREEN, bg=BG_DARK)
        self.lbl_current.pack(pady=(10, 0))
        self.lbl_next = tk.Label(inner, text="", font=FONT_PIXEL, fg=TEXT_WHITE, bg=BG_DARK)
        self.lbl_next.pack()
        self.lbl_countdown = tk.Label(inner, text="--:--:--", font=FONT_CLOCK, fg=ACCENT_GOLD, bg=BG_DARK)
        self.lbl_countdown.pack(pady=4)

        table = tk.Frame(inner, bg=BG_CARD)
        table.pack(fill=tk.X, padx=12, pady=4)
        self.time_labels = {}
        for row, name in enumerate(PRAYER_NAMES):
            tk.Label(table, text=name, font=FONT_PIXEL_SM, fg=TEXT_DIM, bg=BG_CARD, anchor="w", width=12).grid(row=row, column=0, sticky="w", padx=6)
            lbl = tk.Label(table, text="--:--", font=FONT_PIXEL_SM, fg=TEXT_WHITE, bg=BG_CARD)
            lbl.grid(row=row, column=1, sticky="e", padx=6)
            self.time_labels[name] = lbl

        self.lbl_date = tk.Label(inner, text="--, --", font=FONT_PIXEL_SM, fg=TEXT_DIM, bg=BG_DARK)
        self.lbl_date.pack(side=tk.BOTTOM, pady=6)

    # ──────────────────────────────────────────────────────────────────────
    # Engine frames
    # ──────────────────────────────────────────────────────────────────────
    def render(self, frame: RenderState):
        """Called from the engine worker; hand the frame to the Tk thread."""
        self.root.after(0, lambda: self._apply_frame(frame))

    def _apply_frame(self, frame: RenderState):
        self._frame = frame
        self.lbl_current.config(text=frame.current_label)
        self.lbl_next.config(text=frame.next_label)
        self.lbl_date.config(text=frame.date_text)
        self._update_times()
        self._update_countdown()

    def _update_times(self):
        today = self.engine.cache.get_today()
        for name, lbl in self.time_labels.items():
            if today is None:
                lbl.config(text="--:--", fg=TEXT_DIM)
                continue
            start = dict(today.times.starts())[name]
            fg = ACCENT_GOLD if self._frame and self._frame.current_label == name else TEXT_WHITE
            lbl.config(text=start.strftime("%H:%M"), fg=fg)

    def _update_countdown(self):
        if self._frame is None:
            return
        text = self._frame.countdown_at(time.monotonic())
        self.lbl_countdown.config(text=text, fg=TEXT_RED if self._frame.is_live and text < "00:05:00" else ACCENT_GOLD)

    def _tick(self):
        """Redraw the live countdown from the frame's monotonic base."""
        self._update_countdown()
        self.root.after(REFRESH_MS, self._tick)

    # ──────────────────────────────────────────────────────────────────────
    # Actions
    # ──────────────────────────────────────────────────────────────────────
    def engine_sync(self):
        self.engine.sync_now()

    def _close(self):
        threading.Thread(target=self.engine.stop, daemon=True).start()
        self.root.destroy()

    def _show_location_dialog(self):
        dlg = tk.Toplevel(self.root)
        dlg.title("Set Location")
        dlg.configure(bg=BG_DARK)
        dlg.attributes("-topmost", True)
        dlg.resizable(False, False)

        current = self.engine.settings
        entries = {}
        for row, (key, label) in enumerate((("city", "City"), ("country", "Country"))):
            tk.Label(dlg, text=label, font=FONT_PIXEL_SM, fg=TEXT_DIM, bg=BG_DARK).grid(row=row, column=0, padx=8, pady=4, sticky="w")
            entry = tk.Entry(dlg, font=FONT_PIXEL_SM, bg=BG_CARD, fg=TEXT_WHITE, insertbackground=TEXT_WHITE)
            entry.insert(0, getattr(current, key))
            entry.grid(row=row, column=1, padx=8, pady=4)
            entries[key] = entry
        notify_var = tk.BooleanVar(value=current.notifications_enabled)
        tk.Checkbutton(
            dlg, text="Notify at prayer start", variable=notify_var, font=FONT_PIXEL_SM,
            fg=TEXT_WHITE, bg=BG_DARK, selectcolor=BG_CARD, activebackground=BG_DARK,
        ).grid(row=2, column=0, columnspan=2, sticky="w", padx=8)

        school_var = tk.IntVar(value=current.school)
        tk.Label(dlg, text="Asr", font=FONT_PIXEL_SM, fg=TEXT_DIM, bg=BG_DARK).grid(row=3, column=0, padx=8, pady=4, sticky="w")
        school_row = tk.Frame(dlg, bg=BG_DARK)
        school_row.grid(row=3, column=1, sticky="w", padx=8)
        for value, label in SCHOOLS:
            tk.Radiobutton(
                school_row, text=label, variable=school_var, value=value, font=FONT_PIXEL_SM,
                fg=TEXT_WHITE, bg=BG_DARK, selectcolor=BG_CARD, activebackground=BG_DARK,
            ).pack(side="left")

        def _apply():
            city = entries["city"].get().strip()
            country = entries["country"].get().strip()
            if not city or not country:
                messagebox.showerror("Invalid location", "Please enter both a city and a country.", parent=dlg)
                return
            self.engine.update_settings(dataclasses.replace(
                current,
                city=city,
                country=country,
                use_device_location=False,
                notifications_enabled=notify_var.get(),
                school=school_var.get(),
            ))
            dlg.destroy()

        tk.Button(
            dlg, text="  Save  ", font=FONT_PIXEL_SM, fg=TEXT_WHITE, bg=BG_HIGHLIGHT,
            bd=0, cursor="hand2", command=_apply,
        ).grid(row=4, column=0, columnspan=2, pady=8)


# ──────────────────────────────────────────────────────────────────────────────
# Entry point
# ──────────────────────────────────────────────────────────────────────────────
def run_headless():
    engine = PrayerWidgetEngine(LogRenderer(), settings=with_detected_location(load_settings()))
    engine.start()
    try:
        while True:
            time.sleep(3600)
    except KeyboardInterrupt:
        engine.stop()


def main():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        root = tk.Tk()
    except tk.TclError as e:
        logger.warning(f"No display available ({e}), running headless")
        run_headless()
        return
    PrayerWidgetApp(root)
    root.mainloop()


if __name__ == "__main__":
    main()
