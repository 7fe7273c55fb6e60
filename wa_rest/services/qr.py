import base64
import io

import qrcode


def to_png_base64(token):
    img = qrcode.make(token)
    buffered = io.BytesIO()
    img.save(buffered, format="PNG")
    return base64.b64encode(buffered.getvalue()).decode("utf-8")


def to_data_url(token):
    return "data:image/png;base64," + to_png_base64(token)


def to_ascii(token):
    qr = qrcode.QRCode(border=1)
    qr.add_data(token)
    qr.make()
    buf = io.StringIO()
    qr.print_ascii(out=buf, invert=True)
    return buf.getvalue()
