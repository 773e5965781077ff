"""Minimal browser page: open/close webcam and watch the annotated stream."""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import HTMLResponse

page_router = APIRouter(include_in_schema=False)

_PAGE = """<!doctype html>
<html>
<head><meta charset="utf-8"><title>FaceOverlay</title></head>
<body style="font-family: sans-serif">
<div style="text-align: center; padding: 10px">
  <button id="toggle" disabled>Loading</button>
  <div id="view" style="display: flex; justify-content: center; padding: 10px"></div>
</div>
<script>
const api = "/api/v1";
const toggle = document.getElementById("toggle");
const view = document.getElementById("view");
// Open the page as /?token=KEY when FACEOVERLAY_API_KEY is set.
const token = new URLSearchParams(location.search).get("token");
const headers = token ? {Authorization: "Bearer " + token} : {};

function render(status) {
  const open = status.state === "active" || status.state === "requesting";
  toggle.disabled = !status.models_ready;
  toggle.textContent = !status.models_ready ? "Loading" : open ? "Close Webcam" : "Open Webcam";
  if (open && !view.firstChild) {
    const img = document.createElement("img");
    img.src = api + "/stream?ts=" + Date.now() + (token ? "&token=" + encodeURIComponent(token) : "");
    img.width = status.display_width;
    img.height = status.display_height;
    img.style.borderRadius = "10px";
    view.appendChild(img);
  } else if (!open) {
    view.replaceChildren();
  }
}

async function refresh() {
  const response = await fetch(api + "/capture", {headers});
  if (response.ok) render(await response.json());
}

toggle.addEventListener("click", async () => {
  const open = toggle.textContent === "Close Webcam";
  const response = await fetch(api + (open ? "/capture/stop" : "/capture/start"), {method: "POST", headers});
  const body = await response.json();
  if (!response.ok) { alert(body.detail); return; }
  render(body);
});

refresh();
setInterval(refresh, 1000);
</script>
</body>
</html>
"""


@page_router.get("/", response_class=HTMLResponse)
async def index() -> HTMLResponse:
    return HTMLResponse(_PAGE)
