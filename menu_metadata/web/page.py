"""Single-page UI. All state lives in the server-side session controller; the
page only renders snapshots and forwards user actions."""

from __future__ import annotations

from html import escape

from menu_metadata.catalog.models import ALLOWED_IMAGE_TYPES

_PAGE_TEMPLATE = """<!doctype html>
<html lang="en">
<head>
<meta charset="utf-8" />
<meta name="viewport" content="width=device-width, initial-scale=1" />
<title>__TITLE__</title>
<style>
  body { font-family: system-ui, sans-serif; background: #111827; color: #f3f4f6; margin: 0; }
  header { display: flex; justify-content: space-between; align-items: center; padding: 1rem 2rem; }
  main { display: grid; grid-template-columns: 1fr 1fr; gap: 2rem; padding: 0 2rem 2rem; }
  @media (max-width: 900px) { main { grid-template-columns: 1fr; } }
  .card { background: #1f2937; border: 1px solid #374151; border-radius: .75rem; padding: 1.5rem; }
  label { display: block; margin-top: 1rem; font-size: .85rem; color: #9ca3af; }
  input[type=text], textarea { width: 100%; box-sizing: border-box; background: #111827; color: inherit;
    border: 1px solid #374151; border-radius: .5rem; padding: .5rem; }
  button { margin-top: 1rem; padding: .6rem 1.2rem; border: 0; border-radius: .5rem; background: #dc2626;
    color: #fff; font-weight: 600; cursor: pointer; }
  button:disabled { background: #4b5563; cursor: not-allowed; }
  img { max-width: 100%; max-height: 20rem; object-fit: contain; border-radius: .5rem; }
  .tag { display: inline-block; background: #374151; border-radius: 999px; padding: .2rem .6rem;
    margin: 0 .4rem .4rem 0; font-size: .8rem; }
  .error { color: #f87171; }
  .muted { color: #9ca3af; }
  h3 { font-size: .8rem; text-transform: uppercase; color: #9ca3af; letter-spacing: .05em; }
</style>
</head>
<body>
<header>
  <h1>__TITLE__</h1>
  <button id="reset">Reset</button>
</header>
<main>
  <section class="card">
    <h2>1. Upload a photo or describe the item</h2>
    <div id="preview" class="muted">PNG, JPG, or WEBP supported.</div>
    <input id="file" type="file" accept="__ACCEPT__" />
    <label for="item-name">Item name (optional)</label>
    <input id="item-name" type="text" />
    <label for="description">Description (optional)</label>
    <textarea id="description" rows="4"></textarea>
    <div id="input-error" class="error"></div>
    <button id="submit" disabled>Generate Metadata</button>
  </section>
  <section class="card">
    <h2>2. Extracted Metadata</h2>
    <div id="output" class="muted">Metadata will appear here once an item is processed.</div>
  </section>
</main>
<script>
const api = "/api/sessions";
let sessionId = null;
let pollTimer = null;

const $ = (id) => document.getElementById(id);
const esc = (s) => String(s).replace(/[&<>"]/g, (c) => ({"&": "&amp;", "<": "&lt;", ">": "&gt;", '"': "&quot;"}[c]));
const tags = (items, prefix) => (items || []).map((t) => `<span class="tag">${prefix}${esc(t)}</span>`).join("");

async function call(method, path, body, isForm) {
  const opts = {method, headers: {}};
  if (body !== undefined) {
    if (isForm) { opts.body = body; } else { opts.body = JSON.stringify(body); opts.headers["Content-Type"] = "application/json"; }
  }
  const resp = await fetch(`${api}/${sessionId}${path}`, opts);
  const data = await resp.json();
  if (!resp.ok) { throw new Error(data.detail || resp.statusText); }
  return data;
}

function render(state) {
  $("submit").disabled = !state.can_submit;
  $("file").disabled = state.phase === "loading";
  $("submit").textContent = state.phase === "loading" ? "Processing..." : "Generate Metadata";
  const out = $("output");
  if (state.phase === "loading") {
    out.innerHTML = '<p class="muted">Analyzing menu item...</p>';
  } else if (state.error) {
    out.innerHTML = `<h3 class="error">Error</h3><p class="error">${esc(state.error)}</p>`;
  } else if (state.result) {
    const r = state.result;
    out.innerHTML = `
      <button id="copy" ${state.copied ? "disabled" : ""}>${state.copied ? "Copied!" : "Copy JSON"}</button>
      <h2>${esc(r.itemName)}</h2><p class="muted">${esc(r.category)}</p>
      <p><em>"${esc(r.description)}"</em></p>
      <h3>Dietary &amp; Allergens</h3>${tags(r.dietaryTags, "")}${tags(r.allergenWarnings, "&#9888; ")}
      <h3>Suggested Pairings</h3>${tags(r.suggestedPairings, "+ ")}
      <h3>SEO Keywords</h3>${tags(r.seoKeywords, "#")}`;
    $("copy").onclick = copyJson;
  } else {
    out.innerHTML = '<p class="muted">Metadata will appear here once an item is processed.</p>';
  }
  if (state.phase === "loading" || state.copied) { schedulePoll(); }
}

function schedulePoll() {
  clearTimeout(pollTimer);
  pollTimer = setTimeout(async () => render(await call("GET", "")), 500);
}

function showInputError(err) { $("input-error").textContent = err ? err.message : ""; }

async function copyJson() {
  const resp = await fetch(`${api}/${sessionId}/result.json`);
  if (!resp.ok) { return; }
  try {
    await navigator.clipboard.writeText(await resp.text());
  } catch (err) {
    console.error("Failed to copy JSON: ", err);
    return;
  }
  render(await call("POST", "/copy"));
}

$("file").onchange = async (event) => {
  const file = event.target.files[0];
  if (!file) { return; }
  const form = new FormData();
  form.append("file", file);
  try {
    render(await call("PUT", "/image", form, true));
    $("preview").innerHTML = `<img alt="Menu item preview" src="${URL.createObjectURL(file)}" />`;
    showInputError(null);
  } catch (err) { event.target.value = ""; showInputError(err); }
};

let fieldTimer = null;
const sendFields = () => call("PUT", "/fields", {item_name: $("item-name").value, description: $("description").value});
const pushFields = () => {
  clearTimeout(fieldTimer);
  fieldTimer = setTimeout(async () => {
    try {
      render(await sendFields());
      showInputError(null);
    } catch (err) { showInputError(err); }
  }, 250);
};
$("item-name").oninput = pushFields;
$("description").oninput = pushFields;

$("submit").onclick = async () => {
  clearTimeout(fieldTimer);
  try {
    await sendFields();
    render(await call("POST", "/submit"));
    showInputError(null);
  } catch (err) { showInputError(err); }
};

$("reset").onclick = async () => {
  clearTimeout(pollTimer);
  $("file").value = ""; $("item-name").value = ""; $("description").value = "";
  $("preview").textContent = "PNG, JPG, or WEBP supported.";
  showInputError(null);
  render(await call("POST", "/reset"));
};

(async () => {
  const resp = await fetch(api, {method: "POST"});
  const data = await resp.json();
  sessionId = data.session_id;
  render(data.state);
})();
</script>
</body>
</html>
"""


def render_page(title: str) -> str:
    return _PAGE_TEMPLATE.replace("__TITLE__", escape(title)).replace(
        "__ACCEPT__", ", ".join(ALLOWED_IMAGE_TYPES)
    )
