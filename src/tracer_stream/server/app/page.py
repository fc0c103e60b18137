"""Minimal browser viewer served at ``/``."""

from __future__ import annotations

from string import Template

_PAGE = Template(
    """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<title>tracer-stream</title>
<style>body { margin: 0; background: #111; } img { display: block; image-rendering: pixelated; }</style>
</head>
<body>
<img id="image" width="$width" height="$height" alt="">
<script>
  const ws = new WebSocket((location.protocol === "https:" ? "wss://" : "ws://") + location.host + "/ws");
  ws.binaryType = "blob";
  const keys = { w: "1", s: "2", a: "3", d: "4" };
  const el = document.getElementById("image");
  let lastUrl = null;

  function throttle(func, delay) {
    let timerId;
    return function (...args) {
      if (timerId) { return; }
      func.apply(this, args);
      timerId = setTimeout(() => { timerId = undefined; }, delay);
    };
  }

  ws.onopen = () => {
    document.onkeypress = (e) => {
      const cmd = keys[String.fromCharCode(e.keyCode).toLowerCase()];
      if (cmd) { ws.send(cmd); }
    };
    el.onmousemove = throttle((e) => ws.send("mousemove " + e.offsetX + " " + e.offsetY), 50);
    el.onclick = (e) => ws.send("mouseclick " + e.offsetX + " " + e.offsetY);
  };
  ws.onmessage = (evt) => {
    const url = URL.createObjectURL(new Blob([evt.data], { type: "image/png" }));
    el.src = url;
    if (lastUrl) { URL.revokeObjectURL(lastUrl); }
    lastUrl = url;
  };
  ws.onerror = (evt) => console.log("ws error", evt);
</script>
</body>
</html>
"""
)


def render_page(width: int, height: int) -> str:
    return _PAGE.substitute(width=int(width), height=int(height))


__all__ = ["render_page"]
