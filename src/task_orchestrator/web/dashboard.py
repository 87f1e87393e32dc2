"""Dashboard HTML with inline CSS and vanilla JS."""


def get_dashboard_html() -> str:
    return """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>Task Orchestrator</title>
<style>
  :root {
    --bg: #0d1117; --surface: #161b22; --border: #30363d;
    --text: #e6edf3; --text-muted: #8b949e; --text-dim: #6e7681;
    --blocked: #8b949e; --running: #58a6ff; --completed: #3fb950; --failed: #f85149;
  }
  * { margin: 0; padding: 0; box-sizing: border-box; }
  body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Helvetica, Arial, sans-serif;
         background: var(--bg); color: var(--text); line-height: 1.5; }
  .container { max-width: 960px; margin: 0 auto; padding: 24px 16px; }
  header { display: flex; justify-content: space-between; align-items: center;
           padding-bottom: 16px; border-bottom: 1px solid var(--border); margin-bottom: 24px; }
  header h1 { font-size: 20px; font-weight: 600; }
  .state { font-size: 13px; font-weight: 600; text-transform: uppercase; letter-spacing: 0.5px; }
  .state.running { color: var(--running); }
  .state.complete { color: var(--completed); }
  .state.failed { color: var(--failed); }
  h2 { font-size: 14px; margin: 20px 0 8px; color: var(--text-muted); }
  .task-card { background: var(--surface); border: 1px solid var(--border);
               border-radius: 8px; padding: 10px 14px; margin-bottom: 2px; font-size: 13px; }
  .task-card.running { border-left: 3px solid var(--running); }
  .task-card.blocked { border-left: 3px solid var(--blocked); }
  .task-card.completed { border-left: 3px solid var(--completed); }
  .task-card.failed { border-left: 3px solid var(--failed); }
  .task-id { font-family: monospace; font-weight: 600; }
  .meta { color: var(--text-dim); font-size: 12px; }
  .empty { color: var(--text-muted); font-size: 13px; padding: 4px 0; }
</style>
</head>
<body>
<div class="container">
  <header>
    <h1>Task Orchestrator</h1>
    <span id="state" class="state">loading</span>
  </header>
  <div id="content"></div>
</div>

<script>
const SECTIONS = ['running', 'blocked', 'completed', 'failed'];

async function fetchJSON(path) {
  const res = await fetch(path);
  if (!res.ok) return null;
  return res.json();
}

async function refresh() {
  const snap = await fetchJSON('/api/status');
  const state = document.getElementById('state');
  const content = document.getElementById('content');
  if (!snap) {
    state.textContent = 'no snapshot';
    content.innerHTML = '<div class="empty">The orchestrator has not published a snapshot yet.</div>';
    return;
  }
  state.textContent = snap.state;
  state.className = 'state ' + snap.state;

  let html = '';
  for (const section of SECTIONS) {
    const entries = snap[section] || [];
    html += `<h2>${section} (${entries.length})</h2>`;
    if (entries.length === 0) { html += '<div class="empty">none</div>'; continue; }
    for (const t of entries) {
      let extra = '';
      if (t.waiting_on && t.waiting_on.length) extra = 'waiting on ' + t.waiting_on.map(esc).join(', ');
      if (t.result_summary) extra = esc(t.result_summary);
      if (t.error) extra = esc(t.error);
      const when = t.started || t.completed || t.created || '';
      html += `<div class="task-card ${section}">
        <span class="task-id">${esc(t.id)}</span> ${esc(t.description)}
        <div class="meta">${esc(t.kind)} &middot; ${esc(t.worker_type)} &middot; ${esc(when)}</div>
        ${extra ? `<div class="meta">${extra}</div>` : ''}
      </div>`;
    }
  }
  content.innerHTML = html;
}

function esc(s) {
  if (!s) return '';
  const d = document.createElement('div');
  d.textContent = s;
  return d.innerHTML;
}

refresh();
setInterval(refresh, 5000);
</script>
</body>
</html>"""
