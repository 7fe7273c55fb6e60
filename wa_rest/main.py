import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse

from wa_rest.api.routes import router
from wa_rest.core import config
from wa_rest.core.exceptions import AppException, TransientIOError
from wa_rest.core.logging import log, setup_logging
from wa_rest.services.whatsapp import service


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(level=config.LOG_LEVEL, log_dir=config.LOG_DIR)
    config.UPLOADS_DIR.mkdir(parents=True, exist_ok=True)
    config.AUTH_DIR.mkdir(parents=True, exist_ok=True)
    log.info(f"WhatsApp REST API starting on http://localhost:{config.PORT}")
    log.info(f"QR Code endpoint: http://localhost:{config.PORT}/qr/display")

    if config.AUTO_CONNECT:
        try:
            await service.request_connect()
        except TransientIOError as e:
            log.warning(f"Initial WhatsApp connect failed, retry scheduled: {e}")

    yield

    log.info("Shutting down...")
    await service.close()


app = FastAPI(title="WhatsApp REST API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def logging_middleware(request: Request, call_next):
    """Log all requests."""
    request_id = str(uuid.uuid4())[:8]
    start_time = time.time()

    with log.contextualize(request_id=request_id):
        response = await call_next(request)
        duration_ms = (time.time() - start_time) * 1000
        log.info(
            f"{request.method} {request.url.path} -> {response.status_code} "
            f"({duration_ms:.1f}ms)"
        )

    return response


@app.exception_handler(AppException)
async def app_exception_handler(request: Request, exc: AppException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"status": "error", "error": exc.code, "message": exc.message, "details": exc.details},
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    log.exception("Unhandled exception")
    return JSONResponse(
        status_code=500,
        content={"status": "error", "error": "InternalError", "message": str(exc)},
    )


app.include_router(router)


@app.get("/", response_class=HTMLResponse)
def home():
    html_content = """
    <!DOCTYPE html>
    <html>
    <head>
        <title>WhatsApp REST API</title>
        <style>
            body { font-family: sans-serif; text-align: center; padding: 20px; background: #f0f2f5; }
            .container { background: white; max-width: 640px; margin: 0 auto 20px; padding: 30px; border-radius: 10px; box-shadow: 0 2px 10px rgba(0,0,0,0.1); }
            h1 { color: #128C7E; }
            #qr-container { margin: 20px auto; min-height: 264px; display: flex; align-items: center; justify-content: center; }
            #status { font-weight: bold; margin-bottom: 20px; padding: 10px; border-radius: 5px; }
            .status-connected { background: #dcf8c6; color: #075e54; }
            .status-waiting { background: #fff3cd; color: #856404; }
            img { border: 1px solid #ccc; padding: 10px; border-radius: 8px; }
            button { margin: 4px; padding: 8px 14px; border: none; border-radius: 5px; background: #25D366; color: white; cursor: pointer; }
            button.danger { background: #d9534f; }
            input, textarea { width: 90%; margin: 6px 0; padding: 8px; }
            #groups li { text-align: left; }
            #result { margin-top: 10px; font-size: 0.9em; color: #666; white-space: pre-wrap; }
        </style>
    </head>
    <body>
        <div class="container">
            <h1>WhatsApp REST API</h1>
            <div id="status">Loading status...</div>
            <div id="qr-container"></div>
            <div>
                <button onclick="post('/connect')">Connect</button>
                <button onclick="post('/disconnect', {deleteAuth: false})">Disconnect</button>
                <button class="danger" onclick="post('/disconnect', {deleteAuth: true, reconnect: false})">Logout</button>
                <button class="danger" onclick="post('/clear-auth')">Clear auth</button>
            </div>
        </div>

        <div class="container">
            <h2>Send message</h2>
            <form id="send-form">
                <input name="number" placeholder="Number or chat id (e.g. 628999812190)" required>
                <textarea name="message" placeholder="Message"></textarea>
                <input type="file" name="image">
                <button type="submit">Send</button>
            </form>
            <div id="result"></div>
        </div>

        <div class="container">
            <h2>Groups</h2>
            <button onclick="loadGroups()">Load groups</button>
            <ul id="groups"></ul>
        </div>

        <script>
            let currentPhase = '';

            async function checkStatus() {
                try {
                    const response = await fetch('/status');
                    const data = await response.json();
                    const statusDiv = document.getElementById('status');
                    const qrContainer = document.getElementById('qr-container');

                    if (data.phase === 'awaiting_scan') {
                        loadQR();
                    }
                    if (data.phase !== currentPhase) {
                        currentPhase = data.phase;
                        if (data.isReady) {
                            statusDiv.className = 'status-connected';
                            const who = data.identity && (data.identity.displayName || data.identity.id);
                            statusDiv.innerText = 'Connected to WhatsApp' + (who ? ' as ' + who : '');
                            qrContainer.innerHTML = '<p>Session active</p>';
                        } else if (data.phase === 'awaiting_scan') {
                            statusDiv.className = 'status-waiting';
                            statusDiv.innerText = 'Scan the QR code';
                        } else {
                            statusDiv.className = '';
                            statusDiv.innerText = 'Status: ' + data.phase;
                            qrContainer.innerHTML = '';
                        }
                    }
                } catch (error) {
                    console.error('Error:', error);
                }
            }

            async function loadQR() {
                const response = await fetch('/qr/display');
                if (!response.ok) return;
                const html = await response.text();
                const doc = new DOMParser().parseFromString(html, 'text/html');
                const img = doc.querySelector('img');
                if (img) {
                    const qrContainer = document.getElementById('qr-container');
                    qrContainer.innerHTML = '';
                    qrContainer.appendChild(img);
                }
            }

            async function post(path, body) {
                const options = { method: 'POST' };
                if (body) {
                    options.headers = { 'Content-Type': 'application/json' };
                    options.body = JSON.stringify(body);
                }
                const response = await fetch(path, options);
                document.getElementById('result').innerText = JSON.stringify(await response.json(), null, 2);
                checkStatus();
            }

            async function loadGroups() {
                const response = await fetch('/groups');
                const data = await response.json();
                const list = document.getElementById('groups');
                list.innerHTML = '';
                if (!response.ok) {
                    list.innerHTML = '<li>' + data.message + '</li>';
                    return;
                }
                for (const group of data.groups) {
                    const item = document.createElement('li');
                    item.innerText = (group.subject || '(no subject)') + ' - ' + group.id;
                    list.appendChild(item);
                }
            }

            document.getElementById('send-form').addEventListener('submit', async (event) => {
                event.preventDefault();
                const response = await fetch('/send-message', { method: 'POST', body: new FormData(event.target) });
                document.getElementById('result').innerText = JSON.stringify(await response.json(), null, 2);
            });

            setInterval(checkStatus, 3000);
            checkStatus();
        </script>
    </body>
    </html>
    """
    return HTMLResponse(content=html_content)
