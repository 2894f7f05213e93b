import os
import tkinter as tk
from tkinter import filedialog, messagebox
from tkinterdnd2 import DND_FILES, TkinterDnD
import json

VERSION = "1.0.0"
SETTINGS_FILE = "pmxinspect_settings.json"

def save_settings(settings: dict):
    """Save settings to JSON file."""
    try:
        with open(SETTINGS_FILE, "w", encoding="utf-8") as f:
            json.dump(settings, f, ensure_ascii=False, indent=4)
    except OSError as e:
        print(f"Failed to save settings: {e}")


def load_settings() -> dict:
    """Load settings from JSON file if it exists."""
    if os.path.exists(SETTINGS_FILE):
        try:
            with open(SETTINGS_FILE, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            print(f"Failed to load settings: {e}")
    return {}


import pmxinspect
def run_inspect(path: str, output: tk.Text, all_violations: bool = False) -> bool:
    """
    Parses a PMX file and shows the report in the output box.
    """
    if not path:
        messagebox.showerror("Error", "A PMX file must be specified.")
        return False
    if not os.path.isfile(path):
        messagebox.showerror("Error", "PMX file does not exist.")
        return False

    model, msg = pmxinspect.load_pmx_file(path, all_violations=all_violations)

    output.config(state="normal")
    output.delete("1.0", tk.END)
    if model is None:
        output.insert(tk.END, msg)
        output.config(state="disabled")
        messagebox.showerror("Error", f"PMX load failed: {msg}")
        return False

    output.insert(tk.END, pmxinspect.format_report(model, path))
    if pmxinspect.report_names(model):
        output.insert(tk.END, "\n* Duplicate or unnamed elements found. See the log for details.")
    output.config(state="disabled")
    return True


# ToolTip class for displaying tooltips on widgets
class ToolTip:
    def __init__(self, widget, text):
        self.widget = widget
        self.text = text
        self.tip_window = None
        self.widget.bind("<Enter>", self.show_tip)
        self.widget.bind("<Leave>", self.hide_tip)

    def show_tip(self, event=None):
        if self.tip_window or not self.text:
            return
        x = self.widget.winfo_rootx() + 20
        y = self.widget.winfo_rooty() + self.widget.winfo_height() + 5
        self.tip_window = tw = tk.Toplevel(self.widget)
        tw.wm_overrideredirect(True)  # Remove window decorations
        tw.wm_geometry(f"+{x}+{y}")
        label = tk.Label(
                tw, text=self.text, justify="left",
                background="#ffffe0", relief="solid", borderwidth=1,
                font=("tahoma", "9", "normal"))
        label.pack(ipadx=5, ipady=2)

    def hide_tip(self, event=None):
        if self.tip_window:
            self.tip_window.destroy()
            self.tip_window = None


def is_valid_path(path: str) -> bool:
    return path.lower().endswith(".pmx") and os.path.isfile(path)


# Function to update the button state based on input validity
def update_button_state(path_var, tb_path, run_button):
    path_valid = is_valid_path(path_var.get())

    tb_path.config(bg="white" if path_valid else "#ffe0e0")

    if path_valid:
        run_button.config(state="normal", bg="green", fg="white")
    else:
        run_button.config(state="disabled", bg="SystemButtonFace", fg="black")


# Main function to create the GUI
def main():
    # Create the main window
    root = TkinterDnD.Tk()
    root.title(f"PMX Inspect Tool {VERSION}")

    settings = load_settings()

    path_var = tk.StringVar(value=settings.get("last_pmx", ""))
    all_violations_var = tk.BooleanVar(value=settings.get("all_violations", False))

    # Main frame for input fields
    frame = tk.Frame(root, padx=16, pady=16)
    frame.pack(fill="both", expand=True)

    run_button = tk.Button(frame)

    def browse_file(var):
        path = filedialog.askopenfilename(filetypes=[("PMX files", "*.pmx")])
        if path:
            var.set(path)

    label = tk.Label(frame, text="PMX File:")
    label.grid(row=0, column=0, sticky="e")
    tb_path = tk.Entry(frame, textvariable=path_var, width=100)
    tb_path.grid(row=0, column=1, padx=8, pady=5)
    browse_btn = tk.Button(frame, text="Browse...", command=lambda: browse_file(path_var))
    browse_btn.grid(row=0, column=2)
    ToolTip(tb_path, "PMX file to inspect. Drop a file here or use Browse.")

    # Report box
    output = tk.Text(frame, width=110, height=24, state="disabled")

    def handle_drop(e):
        path_var.set(e.data.strip('{}').split()[0])
        if is_valid_path(path_var.get()):
            run_inspect(path_var.get(), output, all_violations_var.get())

    tb_path.drop_target_register(DND_FILES)
    tb_path.dnd_bind('<<Drop>>', handle_drop)

    cb = tk.Checkbutton(frame, text="Report all dangling references", variable=all_violations_var)
    cb.grid(row=1, column=1, sticky="w", padx=5, pady=2)
    ToolTip(cb, "Collect every broken index in the model instead of stopping at the first one.")

    # Create the run button
    run_button.config(
        text="▶ Inspect PMX",
        font=("Arial", 16, "bold"),
        command=lambda: run_inspect(path_var.get(), output, all_violations_var.get()),
    )
    run_button.grid(row=2, column=0, columnspan=3, pady=10, sticky="ew")
    ToolTip(run_button, "Click to parse the specified PMX file.")

    output.grid(row=3, column=0, columnspan=3, sticky="nsew")

    # Bind the update callback to the StringVar
    path_var.trace_add("write", lambda *args: update_button_state(path_var, tb_path, run_button))
    update_button_state(path_var, tb_path, run_button)

    # On close event to save settings
    def on_close():
        current_settings = {
            "last_pmx": path_var.get(),
            "all_violations": all_violations_var.get(),
        }
        save_settings(current_settings)
        root.destroy()
    root.protocol("WM_DELETE_WINDOW", on_close)

    root.mainloop()

if __name__ == "__main__":
    main()

# End of pmxinspect_gui.py
