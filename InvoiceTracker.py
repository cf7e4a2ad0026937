from flask import Flask, jsonify, request, send_file, Response
import io
import json
import logging
from pathlib import Path
from lxml import etree
import config
from billing import InvoiceSettings
from entry_tree import InvalidEnvelopeError, parse_envelope
from invoice_pdf import InvoiceGenerationError, generate_invoice
from table_extractor import attach_invoice_controls, extract_from_html

app = Flask(__name__)


def _request_html():
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        html = data.get('html') or ''
        return html if isinstance(html, str) else None
    if data is not None:
        return None
    return request.get_data(as_text=True)


@app.route('/api/extract', methods=['POST'])
def extract():
    html = _request_html()
    if html is None:
        return jsonify({'error': 'Expected HTML text'}), 400
    try:
        envelope = extract_from_html(html)
    except (etree.ParserError, ValueError) as e:
        app.logger.error(f"Table extraction failed: {e}")
        return jsonify({'error': 'Could not read time tracker table'}), 400
    if not envelope:
        return jsonify({'error': 'No time entries found'}), 404
    return Response(envelope, mimetype='application/json')


@app.route('/api/render', methods=['POST'])
def render():
    html = _request_html()
    if html is None:
        return jsonify({'error': 'Expected HTML text'}), 400
    try:
        rendered = attach_invoice_controls(html)
    except (etree.ParserError, ValueError) as e:
        app.logger.error(f"Invoice button attachment failed: {e}")
        return jsonify({'error': 'Could not read time tracker block'}), 400
    return Response(rendered, mimetype='text/html')


@app.route('/generate_invoice', methods=['POST'])
def create_invoice():
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({'error': 'Expected a JSON object'}), 400
    if data.get('action', 'generate') == 'cancel':
        return jsonify({'cancelled': True})

    envelope = data.get('data')
    if isinstance(envelope, dict):
        envelope = json.dumps(envelope)
    try:
        entries = parse_envelope(envelope)
    except InvalidEnvelopeError as e:
        app.logger.error(f"Error generating invoice: {e}")
        return jsonify({'error': str(e)}), 400

    if not entries:
        return jsonify({'message': 'No time entries found to generate invoice'})

    settings = InvoiceSettings.from_config(config)
    try:
        file_path, pdf_bytes = generate_invoice(entries, settings, data.get('flat_rate'), config.VAULT_DIR)
    except InvoiceGenerationError as e:
        app.logger.error(f"Error generating invoice: {e}")
        return jsonify({'error': f"Error generating invoice: {e}"}), 500

    response = send_file(io.BytesIO(pdf_bytes), mimetype='application/pdf', as_attachment=True,
                         download_name=Path(file_path).name)
    response.headers['X-Invoice-Path'] = file_path
    return response


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO)
    print(f"Saving invoices under {config.VAULT_DIR}")
    app.run(debug=True, host='0.0.0.0')
