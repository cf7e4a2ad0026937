"""
Tests for the Flask routes
"""

import json

import pytest

import config
from InvoiceTracker import app

TABLE = (
    '<div class="simple-time-tracker-container">'
    '<table class="simple-time-tracker-table">'
    '<tr><th>Block</th><th>Start time</th><th>End time</th><th>Duration</th></tr>'
    '<tr><td><span style="margin-left: 0em">Design</span></td>'
    '<td><span>15-06-23 09:00:00</span></td><td><span>15-06-23 11:30:00</span></td><td>2h 30m</td></tr>'
    '<tr><td><span style="margin-left: 1em">Mockups</span></td>'
    '<td><span>15-06-23 09:00:00</span></td><td><span>15-06-23 10:00:00</span></td><td>1h</td></tr>'
    '</table>'
    '<div class="simple-time-tracker-bottom"></div>'
    '</div>'
)


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setattr(config, 'VAULT_DIR', tmp_path)
    monkeypatch.setattr(config, 'COMPANY_NAME', 'Acme')
    app.config['TESTING'] = True
    with app.test_client() as c:
        yield c


def test_extract_returns_envelope(client):
    resp = client.post('/api/extract', data=TABLE, content_type='text/html')
    assert resp.status_code == 200
    entries = resp.get_json()['entries']
    assert [(e['name'], e['level']) for e in entries] == [('Design', 0), ('Mockups', 1)]


def test_extract_accepts_json_body(client):
    resp = client.post('/api/extract', json={'html': TABLE})
    assert resp.status_code == 200


def test_extract_without_rows(client):
    resp = client.post('/api/extract', data='<table><tr><th>Header</th></tr></table>', content_type='text/html')
    assert resp.status_code == 404


def test_render_attaches_button(client):
    resp = client.post('/api/render', data=TABLE, content_type='text/html')
    assert resp.status_code == 200
    assert resp.get_data(as_text=True).count('data-invoice-button') == 1


def test_generate_invoice(client, tmp_path):
    envelope = client.post('/api/extract', data=TABLE, content_type='text/html').get_data(as_text=True)
    resp = client.post('/generate_invoice', json={'data': envelope})
    assert resp.status_code == 200
    assert resp.mimetype == 'application/pdf'
    path = resp.headers['X-Invoice-Path']
    assert path.startswith('Invoices/')
    assert '/Acme-invoice-' in path
    assert (tmp_path / path).read_bytes() == resp.data


def test_generate_invoice_flat_rate(client):
    envelope = json.dumps({'entries': [{'name': 'Retainer', 'startTime': None, 'endTime': None}]})
    resp = client.post('/generate_invoice', json={'data': envelope, 'flat_rate': '2500'})
    assert resp.status_code == 200
    assert resp.data.startswith(b'%PDF')


def test_generate_invoice_cancelled(client, tmp_path):
    resp = client.post('/generate_invoice', json={'data': '{"entries": []}', 'action': 'cancel'})
    assert resp.get_json() == {'cancelled': True}
    assert list(tmp_path.iterdir()) == []


def test_generate_invoice_bad_json(client):
    resp = client.post('/generate_invoice', json={'data': '{not json'})
    assert resp.status_code == 400
    assert resp.get_json()['error'] == 'Invalid JSON data in time tracker block'


def test_generate_invoice_no_entries(client, tmp_path):
    resp = client.post('/generate_invoice', json={'data': '{"entries": []}'})
    assert resp.status_code == 200
    assert resp.get_json()['message'] == 'No time entries found to generate invoice'
    assert list(tmp_path.iterdir()) == []


def test_generate_invoice_failure(client, monkeypatch):
    import invoice_pdf

    def broken(*args, **kwargs):
        raise invoice_pdf.InvoiceGenerationError('PDF generation failed: boom')

    monkeypatch.setattr(invoice_pdf, 'render_invoice_pdf', broken)
    resp = client.post('/generate_invoice', json={'data': '{"entries": [{"name": "A"}]}'})
    assert resp.status_code == 500
    assert resp.get_json()['error'] == 'Error generating invoice: Failed to generate invoice: PDF generation failed: boom'


@pytest.mark.parametrize("envelope", ['{"entries": 5}', '{"entries": true}'])
def test_generate_invoice_wrong_envelope_shape(client, envelope):
    resp = client.post('/generate_invoice', json={'data': envelope})
    assert resp.status_code == 400
    assert resp.get_json()['error'] == 'Invalid JSON data in time tracker block'


def test_generate_invoice_non_list_sub_entries(client):
    envelope = json.dumps({'entries': [{'name': 'A', 'subEntries': 5}]})
    resp = client.post('/generate_invoice', json={'data': envelope})
    assert resp.status_code == 200
    assert resp.mimetype == 'application/pdf'


def test_generate_invoice_rejects_array_body(client):
    resp = client.post('/generate_invoice', json=[1, 2])
    assert resp.status_code == 400
    assert resp.get_json()['error'] == 'Expected a JSON object'


@pytest.mark.parametrize("route", ['/api/extract', '/api/render'])
def test_html_routes_reject_non_text_html(client, route):
    resp = client.post(route, json={'html': 5})
    assert resp.status_code == 400
    assert resp.get_json()['error'] == 'Expected HTML text'


@pytest.mark.parametrize("route", ['/api/extract', '/api/render'])
def test_html_routes_reject_array_body(client, route):
    resp = client.post(route, json=['<table></table>'])
    assert resp.status_code == 400


@pytest.mark.parametrize("route", ['/api/extract', '/api/render'])
def test_html_routes_reject_encoding_declaration(client, route):
    html = '<?xml version="1.0" encoding="utf-8"?>' + TABLE
    resp = client.post(route, data=html, content_type='text/html')
    assert resp.status_code == 400
    assert 'error' in resp.get_json()
