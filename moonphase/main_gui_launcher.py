import base64
import json
import os
import tkinter as tk
from datetime import date
from datetime import datetime
from datetime import timezone
from tkinter import filedialog, messagebox, ttk

from moonphase.astro import calculate_moon_phase_state
from moonphase.astro import phase_name
from moonphase.data_loader import encode_png
from moonphase.data_loader import load_moon_texture
from moonphase.data_loader import load_shadow_material
from moonphase.main import APP_NAME
from moonphase.main import get_date_time_local
from moonphase.scrubber import PhaseScrubber
from moonphase.scrubber import SLIDER_STEP_DAYS
from moonphase.scrubber import SYNODIC_MONTH_DAYS
from moonphase.scrubber import simulated_date
from moonphase.scrubber import simulated_phase_fraction

PRESET_FIELDS = ("texture", "shadow", "lat", "time")

class MainWindow(tk.Tk):
    def __init__(self):
        super().__init__()
        self.title(f"{APP_NAME} - Phase Preview")
        self.scrubber = None
        self.initial_age = 0.0
        self.today = date.today()
        self._photo = None
        self._closing = False
        self._build_ui()
        self.protocol("WM_DELETE_WINDOW", self.on_close)

    def _build_ui(self):

        frm = tk.Frame(self)
        frm.pack(padx=10, pady=10, fill=tk.BOTH, expand=True)
        frm.columnconfigure(1, weight=1)

        tk.Label(frm, text="Moon texture:").grid(row=0, column=0, sticky=tk.E, pady=2)
        tk.Label(frm, text="Shadow texture:").grid(row=1, column=0, sticky=tk.E, pady=2)
        tk.Label(frm, text="Observer latitude:").grid(row=2, column=0, sticky=tk.E, pady=2)
        tk.Label(frm, text="Time with timezone:").grid(row=3, column=0, sticky=tk.E, pady=2)

        self.texture = tk.Entry(frm, width=60)
        self.texture.grid(row=0, column=1, sticky=tk.W, pady=2)

        self.shadow = tk.Entry(frm, width=60)
        self.shadow.grid(row=1, column=1, sticky=tk.W, pady=2)

        self.lat = tk.Entry(frm, width=60)
        self.lat.grid(row=2, column=1, sticky=tk.W, pady=2)

        self.time = tk.Entry(frm, width=60)
        self.time.grid(row=3, column=1, sticky=tk.W, pady=2)
        self.time.insert(0, datetime.now().astimezone().isoformat(timespec="seconds"))

        def _set_time_now():
            self.time.delete(0, tk.END)
            self.time.insert(0, datetime.now().astimezone().isoformat(timespec="seconds"))

        tk.Button(frm, text="Browse", width=12, command=lambda: self.browse(self.texture)).grid(row=0, column=2, sticky=tk.W, pady=2, padx=4)
        tk.Button(frm, text="Browse", width=12, command=lambda: self.browse(self.shadow)).grid(row=1, column=2, sticky=tk.W, pady=2, padx=4)
        tk.Button(frm, text="Now", width=12, command=_set_time_now).grid(row=3, column=2, sticky=tk.W, pady=2, padx=4)

        self.show_btn = tk.Button(frm, text="Show Moon", command=self.on_show)
        self.show_btn.grid(row=4, column=0, columnspan=3, sticky=tk.EW, pady=(10, 0))

        self.moon_label = tk.Label(frm, text="", width=40, height=12)
        self.moon_label.grid(row=5, column=0, columnspan=3, pady=(10, 0))

        self.date_label = tk.Label(frm, text="")
        self.date_label.grid(row=6, column=0, columnspan=3)

        self.phase_label = tk.Label(frm, text="")
        self.phase_label.grid(row=7, column=0, columnspan=3)

        self.age_scale = tk.Scale(frm, from_=0, to=SYNODIC_MONTH_DAYS, resolution=SLIDER_STEP_DAYS,
                                  orient=tk.HORIZONTAL, label="Moon age (days)", command=self.on_slide)
        self.age_scale.grid(row=8, column=0, columnspan=3, sticky=tk.EW)

        preset_frame = tk.Frame(frm)
        preset_frame.grid(row=9, column=0, columnspan=3, sticky=tk.W, pady=(10, 0))

        tk.Label(preset_frame, text="Preset:").pack(side=tk.LEFT)
        self.preset_combobox = ttk.Combobox(preset_frame, width=20, state="readonly")
        self.preset_combobox.pack(side=tk.LEFT, padx=4)
        tk.Button(preset_frame, text="Load", width=8, command=self._load_preset).pack(side=tk.LEFT, padx=4)
        self.preset_name_entry = tk.Entry(preset_frame, width=20)
        self.preset_name_entry.pack(side=tk.LEFT, padx=4)
        tk.Button(preset_frame, text="Save", width=8, command=self._save_preset).pack(side=tk.LEFT, padx=4)
        self._refresh_preset_list()

    def _get_presets_dir(self):
        """Get the presets directory path, creating it if it doesn't exist."""
        presets_dir = os.path.join(os.path.dirname(__file__), "presets")
        if not os.path.exists(presets_dir):
            os.makedirs(presets_dir)
        return presets_dir

    def _get_preset_list(self):
        presets_dir = self._get_presets_dir()
        return sorted(f[:-5] for f in os.listdir(presets_dir) if f.endswith(".json"))

    def _refresh_preset_list(self):
        self.preset_combobox["values"] = self._get_preset_list()

    def _save_preset(self):
        preset_name = self.preset_name_entry.get().strip()
        if not preset_name:
            messagebox.showerror("Error", "Please enter a preset name.")
            return

        settings = {field: getattr(self, field).get() for field in PRESET_FIELDS}

        filepath = os.path.join(self._get_presets_dir(), f"{preset_name}.json")
        try:
            with open(filepath, "w", encoding="utf-8") as f:
                json.dump(settings, f, indent=2)
        except OSError as e:
            messagebox.showerror("Error", f"Failed to save preset: {e}")
            return
        self._refresh_preset_list()
        presets = self._get_preset_list()
        if preset_name in presets:
            self.preset_combobox.current(presets.index(preset_name))

    def _load_preset(self):
        preset_name = self.preset_combobox.get()
        if not preset_name:
            messagebox.showerror("Error", "Please select a preset to load.")
            return

        filepath = os.path.join(self._get_presets_dir(), f"{preset_name}.json")
        try:
            with open(filepath, "r", encoding="utf-8") as f:
                settings = json.load(f)
        except (OSError, ValueError) as e:
            messagebox.showerror("Error", f"Failed to load preset: {e}")
            return

        for field in PRESET_FIELDS:
            entry = getattr(self, field)
            entry.delete(0, tk.END)
            entry.insert(0, settings.get(field, ""))

        self.preset_name_entry.delete(0, tk.END)
        self.preset_name_entry.insert(0, preset_name)

    def browse(self, entry: tk.Entry):
        path = filedialog.askopenfilename(title="Select image file")
        if path:
            entry.delete(0, tk.END)
            entry.insert(0, path)

    def on_show(self):

        try:
            lat = float(self.lat.get().strip())
        except ValueError:
            messagebox.showerror("Error", "Latitude must be a number.")
            return
        if not (lat >= -90.0 and lat <= 90.0):
            messagebox.showerror("Error", "Invalid latitude. Must be between -90 and 90 degrees.")
            return

        dt_local, error = get_date_time_local(self.time.get().strip())
        if error is not None:
            messagebox.showerror("Error", f"Incorrect time: {error}")
            return

        try:
            texture = load_moon_texture(self.texture.get().strip())
        except ValueError as e:
            messagebox.showerror("Error", str(e))
            return

        shadow_path = self.shadow.get().strip()
        shadow = load_shadow_material(shadow_path) if shadow_path else None

        state = calculate_moon_phase_state(dt_local.astimezone(timezone.utc))
        self.initial_age = state.moon_age_days
        self.today = dt_local.date()

        if self.scrubber is not None:
            self.scrubber.close(timeout=0)
        self.scrubber = PhaseScrubber(texture, lat, on_frame=self._on_frame, shadow_material=shadow)

        self.age_scale.set(round(self.initial_age))
        self.scrubber.submit(self.initial_age)
        self._update_labels(self.initial_age)

    def on_slide(self, value):
        if self.scrubber is None:
            return
        age = float(value)
        self.scrubber.submit(age)
        self._update_labels(age)

    def _update_labels(self, age: float):
        self.date_label.config(text=simulated_date(self.today, self.initial_age, age).isoformat())
        self.phase_label.config(text=f"{phase_name(age)} ({simulated_phase_fraction(age) * 100:.0f}%)")

    def _on_frame(self, age, result):
        # Called on the scrubber thread, widgets must be touched from the Tk thread
        if self._closing:
            return
        self.after(0, lambda: self._show_frame(result))

    def _show_frame(self, result):
        if result.ok:
            self._photo = tk.PhotoImage(data=base64.b64encode(encode_png(result.pixels)).decode("ascii"))
            self.moon_label.config(image=self._photo, text="", width=result.width, height=result.height)
        else:
            self._photo = None
            self.moon_label.config(image="", text=result.placeholder)

    def on_close(self):
        # The worker may be blocked in after(), never join it from the Tk thread
        self._closing = True
        if self.scrubber is not None:
            self.scrubber.close(timeout=0)
        self.destroy()

def main():
    app = MainWindow()
    app.mainloop()


if __name__ == "__main__":
    main()
