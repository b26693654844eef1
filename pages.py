"""HTML views for the secretary desk, the doctors and the waiting room.

Each page is a static shell that polls the JSON API on a timer and renders
whatever comes back.  No queue rules live here; the doctor console only uses
``can_call_next`` from the room overview to disable its call button.
"""

import config
from services import validate_room

_STYLE = """
    body { font-family: sans-serif; margin: 2rem; background: #f6f8fb; }
    h1 { margin-bottom: 0.5rem; }
    table { border-collapse: collapse; width: 100%; background: white; }
    th, td { border-bottom: 1px solid #ddd; padding: 0.5rem; text-align: left; }
    .waiting { color: #92400e; }
    .in_consultation { color: #1e40af; font-weight: bold; }
    .completed { color: #166534; }
    .cancelled { color: #991b1b; }
    .error { color: #991b1b; }
    button { font-size: 1rem; padding: 0.4rem 1rem; margin-right: 0.3rem; }
    .rooms { display: grid; grid-template-columns: repeat(4, 1fr); gap: 1rem; }
    .room { background: white; padding: 1rem; border-radius: 8px; }
"""

# Shared helpers: HTML escaping and JSON fetch with error reporting.
_SCRIPT_HELPERS = """
function esc(value) {
    const div = document.createElement('div');
    div.textContent = value == null ? '' : String(value);
    return div.innerHTML;
}
async function api(method, path, body) {
    const options = { method: method, headers: {} };
    if (body !== undefined) {
        options.headers['Content-Type'] = 'application/json';
        options.body = JSON.stringify(body);
    }
    const response = await fetch(path, options);
    const data = await response.json();
    if (!response.ok) {
        const detail = typeof data.detail === 'string' ? data.detail : JSON.stringify(data.detail);
        throw new Error(detail);
    }
    return data;
}
function fmt(ts) { return new Date(ts).toLocaleTimeString(); }
"""


def _render(template: str, **values: object) -> str:
    html = template.replace("__STYLE__", _STYLE).replace("__HELPERS__", _SCRIPT_HELPERS)
    for key, value in values.items():
        html = html.replace(f"__{key.upper()}__", str(value))
    return html


SECRETARY_TEMPLATE = """
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8" />
    <title>Secretary - Registration</title>
    <style>__STYLE__</style>
</head>
<body>
    <h1>Register patient</h1>
    <form id="register">
        <input name="full_name" placeholder="Full name" required />
        <input name="id_number" placeholder="ID number" required />
        <select name="consultation_room">__ROOM_OPTIONS__</select>
        <input name="arrival_time" type="datetime-local" />
        <button type="submit">Add to queue</button>
        <span id="message"></span>
    </form>
    <h2>Summary</h2>
    <div id="summary"></div>
    <h2>All patients</h2>
    <table>
        <thead><tr><th>#</th><th>Name</th><th>ID</th><th>Room</th><th>Arrival</th><th>Status</th></tr></thead>
        <tbody id="patients"></tbody>
    </table>
    <script>
    __HELPERS__
    async function load() {
        const [patients, summary] = await Promise.all([api('GET', '/patients'), api('GET', '/summary')]);
        document.getElementById('patients').innerHTML = patients.map(p =>
            `<tr><td>${p.id}</td><td>${esc(p.full_name)}</td><td>***${esc(p.id_number.slice(-3))}</td>` +
            `<td>${p.consultation_room}</td><td>${fmt(p.arrival_time)}</td>` +
            `<td class="${p.status}">${p.status}</td></tr>`).join('');
        document.getElementById('summary').innerHTML =
            Object.entries(summary.by_status).map(([s, n]) => `<span class="${s}">${s}: ${n}</span>`).join(' &middot; ');
    }
    document.getElementById('register').addEventListener('submit', async (event) => {
        event.preventDefault();
        const form = new FormData(event.target);
        const body = {
            full_name: form.get('full_name'),
            id_number: form.get('id_number'),
            consultation_room: Number(form.get('consultation_room')),
        };
        if (form.get('arrival_time')) {
            body.arrival_time = new Date(form.get('arrival_time')).toISOString();
        }
        const message = document.getElementById('message');
        try {
            const patient = await api('POST', '/patients', body);
            message.className = '';
            message.textContent = `Added #${patient.id} to room ${patient.consultation_room}`;
            event.target.reset();
            load();
        } catch (err) {
            message.className = 'error';
            message.textContent = err.message;
        }
    });
    load();
    setInterval(load, __POLL_MS__);
    </script>
</body>
</html>
"""


DOCTOR_TEMPLATE = """
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8" />
    <title>Room __ROOM__ - Doctor console</title>
    <style>__STYLE__</style>
</head>
<body>
    <h1>Consultation room __ROOM__</h1>
    <p>__ROOM_LINKS__</p>
    <h2>Current patient</h2>
    <div id="current">None</div>
    <button id="call">Call next patient</button>
    <span id="message"></span>
    <h2>Waiting</h2>
    <table>
        <thead><tr><th>#</th><th>Name</th><th>Arrival</th><th></th></tr></thead>
        <tbody id="waiting"></tbody>
    </table>
    <h2>Room history</h2>
    <table>
        <thead><tr><th>#</th><th>Name</th><th>ID</th><th>Arrival</th><th>Status</th></tr></thead>
        <tbody id="history"></tbody>
    </table>
    <script>
    __HELPERS__
    const ROOM = __ROOM__;
    const message = document.getElementById('message');
    async function setStatus(id, status) {
        try {
            await api('PATCH', `/patients/${id}/status`, { status: status });
            load();
        } catch (err) {
            message.textContent = err.message;
        }
    }
    async function load() {
        const [room, history] = await Promise.all([
            api('GET', `/rooms/${ROOM}`), api('GET', `/rooms/${ROOM}/patients`)]);
        const current = document.getElementById('current');
        if (room.current) {
            const p = room.current;
            current.innerHTML = `<strong>${esc(p.full_name)}</strong> (arrived ${fmt(p.arrival_time)}) ` +
                `<button onclick="setStatus(${p.id}, 'completed')">Complete</button>` +
                `<button onclick="setStatus(${p.id}, 'cancelled')">Cancel</button>`;
        } else {
            current.textContent = 'None';
        }
        document.getElementById('call').disabled = !room.can_call_next;
        document.getElementById('waiting').innerHTML = room.waiting.map(p =>
            `<tr><td>${p.id}</td><td>${esc(p.full_name)}</td><td>${fmt(p.arrival_time)}</td>` +
            `<td><button onclick="setStatus(${p.id}, 'cancelled')">Cancel</button></td></tr>`).join('');
        document.getElementById('history').innerHTML = history.map(p =>
            `<tr><td>${p.id}</td><td>${esc(p.full_name)}</td><td>${esc(p.id_number)}</td>` +
            `<td>${fmt(p.arrival_time)}</td><td class="${p.status}">${p.status}</td></tr>`).join('');
    }
    document.getElementById('call').addEventListener('click', async () => {
        try {
            const patient = await api('POST', `/rooms/${ROOM}/call-next`);
            message.textContent = patient ? `Calling ${patient.full_name}` : 'Nobody is waiting';
            load();
        } catch (err) {
            message.textContent = err.message;
        }
    });
    load();
    setInterval(load, __POLL_MS__);
    </script>
</body>
</html>
"""


BOARD_TEMPLATE = """
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8" />
    <title>Waiting room</title>
    <style>__STYLE__ body { font-size: 1.3rem; }</style>
</head>
<body>
    <h1>Waiting room <span id="clock"></span></h1>
    <div class="rooms" id="rooms"></div>
    <script>
    __HELPERS__
    const ROOMS = __ROOMS__;
    function render(rows) {
        document.getElementById('rooms').innerHTML = ROOMS.map(room => {
            const inRoom = rows.filter(p => p.consultation_room === room);
            const current = inRoom.filter(p => p.status === 'in_consultation');
            const waiting = inRoom.filter(p => p.status === 'waiting');
            return `<div class="room"><h2>Room ${room}</h2>` +
                current.map(p => `<div class="in_consultation">&#9654; ${esc(p.full_name)} (***${esc(p.id_last_three)})</div>`).join('') +
                waiting.map(p => `<div class="waiting">${esc(p.full_name)} (***${esc(p.id_last_three)})</div>`).join('') +
                `</div>`;
        }).join('');
    }
    async function load() { render(await api('GET', '/display')); }
    const events = new EventSource('/display/events');
    events.onmessage = (event) => {
        const message = JSON.parse(event.data);
        if (message.type === 'display') render(message.data);
        else if (message.type === 'board_update') load();
    };
    load();
    setInterval(load, __POLL_MS__);
    setInterval(() => { document.getElementById('clock').textContent = new Date().toLocaleTimeString(); }, 1000);
    </script>
</body>
</html>
"""


def secretary_page() -> str:
    options = "".join(f'<option value="{room}">Room {room}</option>' for room in config.ROOMS)
    return _render(
        SECRETARY_TEMPLATE,
        room_options=options,
        poll_ms=config.SECRETARY_POLL_SECONDS * 1000,
    )


def doctor_page(room: int) -> str:
    room = validate_room(room)
    links = " | ".join(f'<a href="/doctor?room={r}">Room {r}</a>' for r in config.ROOMS)
    return _render(
        DOCTOR_TEMPLATE,
        room=room,
        room_links=links,
        poll_ms=config.DOCTOR_POLL_SECONDS * 1000,
    )


def board_page() -> str:
    return _render(
        BOARD_TEMPLATE,
        rooms=list(config.ROOMS),
        poll_ms=config.BOARD_POLL_SECONDS * 1000,
    )
