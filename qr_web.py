#!/usr/bin/env python3
"""
QR Code Decoder Web App
Run: python3 qr_web.py
Visit: http://<your-ip>:8080 on your phone
"""

import logging

from flask import Flask, request, jsonify, render_template_string

from qr_config import ScanConfig
from qr_decode import decode_upload

logger = logging.getLogger(__name__)

app = Flask(__name__)
app.config['SCAN_CONFIG'] = ScanConfig.from_env()

HTML = '''
<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>QR Decoder</title>
    <style>
        body { font-family: -apple-system, sans-serif; max-width: 500px; margin: 20px auto; padding: 0 20px; }
        #result { margin-top: 20px; padding: 12px; border-radius: 8px; white-space: pre-wrap; word-break: break-all; }
        .ok { background: #e6f7ea; } .fail { background: #fdecea; }
    </style>
</head>
<body>
    <h1>QR Decoder</h1>
    <form id="form">
        <input type="file" name="image" accept="image/*" capture="environment">
        <button type="submit">Decode</button>
    </form>
    <div id="result"></div>
    <script>
        document.getElementById('form').addEventListener('submit', async (e) => {
            e.preventDefault();
            const out = document.getElementById('result');
            out.textContent = 'Decoding...';
            out.className = '';
            const resp = await fetch('/decode', { method: 'POST', body: new FormData(e.target) });
            const data = await resp.json();
            out.className = data.success ? 'ok' : 'fail';
            out.textContent = data.success ? data.text : data.error;
        });
    </script>
</body>
</html>
'''


@app.route('/')
def index():
    return render_template_string(HTML)


@app.route('/decode', methods=['POST'])
def decode():
    if 'image' not in request.files:
        return jsonify({'success': False, 'error': 'No image uploaded'}), 400

    file = request.files['image']
    if file.filename == '':
        return jsonify({'success': False, 'error': 'No file selected'}), 400

    data = file.read()
    logger.info("[WEB] Received %s (%d bytes)", file.filename, len(data))
    result = decode_upload(data, app.config['SCAN_CONFIG'])
    if not result.ok:
        logger.info("[WEB] Decode failed: %s", result.reason)
        return jsonify({'success': False, 'reason': result.reason, 'error': result.user_message})

    logger.info("[WEB] Decoded %s", result.text[:60])
    return jsonify({'success': True, 'text': result.text,
                    'version': result.version, 'ec_level': result.ec_level})


if __name__ == '__main__':
    import socket

    logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(message)s')

    # Get local IP
    s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        s.connect(('8.8.8.8', 80))
        ip = s.getsockname()[0]
    except OSError:
        ip = '127.0.0.1'
    finally:
        s.close()

    port = 8080
    print("=" * 50)
    print("QR Code Decoder Web App")
    print("=" * 50)
    print(f"\nVisit on your phone: http://{ip}:{port}")
    print(f"Or on this computer: http://localhost:{port}")
    print("\nPress Ctrl+C to stop\n")

    app.run(host='0.0.0.0', port=port, debug=False)
