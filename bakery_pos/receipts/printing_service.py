# bakery_pos/receipts/printing_service.py
from __future__ import annotations
import logging, os, time
from typing import Any, Dict
from jinja2 import Environment, BaseLoader
from escpos.printer import Network

from ..checkout.errors import ExternalServiceError

log = logging.getLogger("bakery-pos.printing")

# ========= Debug =========
DEBUG = os.environ.get("PRINT_DEBUG", "").strip() in ("1", "true", "TRUE", "yes", "on")

def dbg(*args):
    if DEBUG:
        log.debug(" ".join(str(a) for a in args))

# ========= Connect =========
def _connect(host: str, port: int, timeout: int = 5):
    dbg(f"Connecting to printer host={host} port={port} ...")
    t0 = time.time()
    try:
        # short timeout, a dead printer must not hang the till
        p = Network(host, port, timeout=timeout)
    except Exception as e:
        log.warning("printer %s:%s unreachable: %r", host, port, e)
        raise ExternalServiceError("printer", f"Printer {host}:{port} unreachable") from e
    dbg(f"Connected in {time.time()-t0:.3f}s")
    return p

def _close(p):
    try:
        p.close()
        dbg("Printer closed")
    except Exception as e:
        log.warning("printer close failed: %r", e)

# ========= Template =========
def render_jinja(body: str, ctx: Dict[str, Any]) -> str:
    env = Environment(loader=BaseLoader(), autoescape=False, trim_blocks=True, lstrip_blocks=True)
    return env.from_string(body).render(**ctx)

# ========= Tag support =========
# [[C]] [[L]] [[R]] [[B]] [[NOB]] [[DW]] [[DH]] [[BIG]] [[NORM]] [[BR]] [[CUT]]
DEFAULT_STYLE = dict(align="left", w=1, h=1, bold=False)

def parse_line(line: str, st: Dict[str, Any]):
    """Strips leading tags off a template line.

    Returns (text, style, actions) where actions is a list of "BR" / "CUT".
    """
    st = dict(st)
    actions = []
    while line.startswith("[["):
        end = line.find("]]")
        if end == -1:
            break
        tag = line[2:end].strip().upper()
        line = line[end + 2:].lstrip()

        if tag == "C": st["align"] = "center"
        elif tag == "L": st["align"] = "left"
        elif tag == "R": st["align"] = "right"
        elif tag == "B": st["bold"] = True
        elif tag == "NOB": st["bold"] = False
        elif tag == "DW": st["w"] = max(st["w"], 2)
        elif tag == "DH": st["h"] = max(st["h"], 2)
        elif tag == "BIG": st.update(dict(w=2, h=2, bold=True))
        elif tag == "NORM": st = dict(DEFAULT_STYLE)
        elif tag in ("BR", "CUT"):
            actions.append(tag)
            line = ""
        else:
            dbg(f"  unknown tag {tag} ignored")
    return line, st, actions

def print_text(host: str, port: int, text: str, do_cut: bool = True, timeout: int = 5):
    dbg("print_text start -> do_cut:", do_cut)
    p = _connect(host, port, timeout)
    try:
        for idx, raw in enumerate(text.splitlines()):
            line, st, actions = parse_line(raw.rstrip("\r"), DEFAULT_STYLE)
            dbg(f"[line {idx:03d}] {line!r} {st} {actions}")
            for action in actions:
                if action == "BR":
                    p.text("\n")
                else:
                    p.text("\n\n")
                    p.cut()
            p.set(align=st["align"], width=st["w"], height=st["h"], bold=st["bold"])
            if line:
                p.text(line + "\n")
        if do_cut:
            p.text("\n\n")  # feed before the cut
            p.cut()
    except Exception as e:
        log.warning("printing on %s:%s failed: %r", host, port, e)
        raise ExternalServiceError("printer", "Receipt printing failed") from e
    finally:
        _close(p)

def open_drawer(host: str, port: int, pin: int = 2, timeout: int = 5):
    """Kicks the cash drawer wired to the printer's DK port."""
    p = _connect(host, port, timeout)
    try:
        p.cashdraw(pin)
        dbg(f"drawer kick pin={pin}")
    except Exception as e:
        log.warning("drawer kick on %s:%s failed: %r", host, port, e)
        raise ExternalServiceError("drawer", "Cash drawer did not open") from e
    finally:
        _close(p)
