"""HTML pages served by /qr/display"""

PAGE_STYLE = """
    body { font-family: Arial, sans-serif; display: flex; justify-content: center; align-items: center; height: 100vh; margin: 0; background: #f5f5f5; }
    .container { text-align: center; padding: 20px; background: white; border-radius: 10px; box-shadow: 0 2px 10px rgba(0,0,0,0.1); }
    .status { color: #25D366; font-size: 18px; margin-bottom: 20px; }
    img { max-width: 400px; margin: 20px 0; }
    p { color: #666; margin: 10px 0; }
"""


def _page(body, head_extra=""):
    return f"""<!DOCTYPE html>
<html>
<head>
    <title>WhatsApp QR Code</title>
    <style>{PAGE_STYLE}</style>
    {head_extra}
</head>
<body>
    <div class="container">
{body}
    </div>
</body>
</html>
"""


def ready_page():
    return _page('        <div class="status">&#10003; WhatsApp is already connected!</div>')


def waiting_page():
    return _page(
        """        <p>QR code is being generated. Please wait...</p>
        <p>This page will refresh automatically.</p>
        <script>setTimeout(() => location.reload(), 3000);</script>""",
    )


def qr_page(data_url):
    return _page(
        f"""        <h2>Scan QR Code with WhatsApp</h2>
        <img src="{data_url}" alt="QR Code">
        <p>1. Open WhatsApp on your phone</p>
        <p>2. Go to Settings &rarr; Linked Devices</p>
        <p>3. Tap "Link a Device"</p>
        <p>4. Scan this QR code</p>
        <p style="color: #999; font-size: 12px;">This page refreshes every 30 seconds</p>""",
        head_extra='<meta http-equiv="refresh" content="30">',
    )
