# tests/test_api.py

import io
import zipfile

import httpx
import pytest
from fastapi.testclient import TestClient

from api.app import create_app
from components.ocr import VisionTextExtractor
from config import OCRConfig, SystemConfig
from core.blob_store import ImageBlobStore
from core.database import CustomerDatabase
from conftest import encode_data_url, solid_image, vase_image


def vision_handler(request: httpx.Request):
    return httpx.Response(200, json={'responses': [{'textAnnotations': [
        {'description': "이름: 박소연\n010-5555-6666\n2025-07-01"}
    ]}]})


@pytest.fixture
def client(tmp_path):
    config = SystemConfig()
    config.storage.database_path = str(tmp_path / "studio.db")
    config.storage.uploads_dir = str(tmp_path / "uploads")

    ocr = VisionTextExtractor(
        OCRConfig(api_key="test"),
        client=httpx.Client(transport=httpx.MockTransport(vision_handler))
    )
    app = create_app(
        config,
        database=CustomerDatabase(config.storage.database_path),
        blob_store=ImageBlobStore(root_dir=config.storage.uploads_dir),
        ocr=ocr,
    )
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def customer_payload():
    return {
        'name': '김도예',
        'phone': '010-1234-5678',
        'work_date': '2025-06-11',
        'program_type': 'painting',
    }


def test_health_endpoints(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()['status'] == 'healthy'
    assert resp.json()['customer_count'] == 0

    detailed = client.get("/health/detailed").json()
    assert detailed['database']['status'] == 'connected'
    assert 'uptime_seconds' in detailed['server']


def test_customer_lifecycle(client, customer_payload):
    created = client.post("/api/customers", json={
        **customer_payload,
        'work_image': encode_data_url(vase_image(), 'image/png'),
    })
    assert created.status_code == 201
    customer = created.json()
    assert customer['customer_id'] == "250611-P-001"
    assert customer['work_image_url'].startswith("/uploads/2025/06/")

    # Stored photo is served statically
    assert client.get(customer['work_image_url']).status_code == 200

    cid = customer['id']
    assert client.get(f"/api/customers/{cid}").json()['name'] == '김도예'

    patched = client.patch(f"/api/customers/{cid}", json={'notes': 'Celadon glaze'})
    assert patched.json()['notes'] == 'Celadon glaze'
    assert patched.json()['work_image'] == customer['work_image']

    status = client.patch(f"/api/customers/{cid}/status", json={'status': 'ready'})
    assert status.json()['status'] == 'ready'

    summary = client.get(f"/api/customers/{cid}/summary").json()
    assert summary['quick_summary'].startswith("Individual | Painting | Ready")

    assert client.delete(f"/api/customers/{cid}").status_code == 204
    assert client.get(f"/api/customers/{cid}").status_code == 404
    assert client.get("/api/check-images").json()['total_in_folder'] == 0


def test_validation_errors(client, customer_payload):
    missing_phone = {k: v for k, v in customer_payload.items() if k != 'phone'}
    assert client.post("/api/customers", json=missing_phone).status_code == 422

    bad_enum = {**customer_payload, 'program_type': 'glassblowing'}
    assert client.post("/api/customers", json=bad_enum).status_code == 422

    bad_image = {**customer_payload, 'work_image': 'data:image/png;base64,bm90IGFuIGltYWdl'}
    resp = client.post("/api/customers", json=bad_image)
    assert resp.status_code == 400
    assert 'message' in resp.json()

    assert client.patch("/api/customers/99", json={'notes': 'x'}).status_code == 404
    assert client.patch("/api/customers/99/status", json={'status': 'ready'}).status_code == 404
    assert client.get("/api/customers/search").status_code == 400


def test_listing_endpoints(client, customer_payload):
    for name in ('Alice', 'Bob', 'Carol'):
        client.post("/api/customers", json={**customer_payload, 'name': name})

    assert len(client.get("/api/customers").json()) == 3
    assert len(client.get("/api/customers/today").json()) == 3
    assert [c['name'] for c in client.get("/api/customers/search", params={'q': 'bob'}).json()] == ['Bob']

    page = client.get("/api/customers/paginated", params={'page': 2, 'limit': 2}).json()
    assert page['total'] == 3
    assert page['total_pages'] == 2
    assert len(page['customers']) == 1

    assert client.get("/api/customers/paginated", params={'date_range': 'decade'}).status_code == 400


def test_upload_endpoint(client):
    resp = client.post("/api/upload", data={'type': 'work'},
                       files={'image': ('pot.png', solid_image((120, 60, 30)), 'image/png')})
    assert resp.status_code == 200
    assert resp.json()['url'] == f"/uploads/{resp.json()['filename']}"

    bad_type = client.post("/api/upload", data={'type': 'selfie'},
                           files={'image': ('pot.png', solid_image((1, 1, 1)), 'image/png')})
    assert bad_type.status_code == 400

    not_image = client.post("/api/upload", data={'type': 'work'},
                            files={'image': ('pot.png', b'plain text', 'image/png')})
    assert not_image.status_code == 400


def test_export_and_download(client, customer_payload):
    created = client.post("/api/customers", json={
        **customer_payload,
        'customer_image': encode_data_url(solid_image((240, 240, 240)), 'image/png'),
    }).json()

    csv_resp = client.get("/api/customers/export", params={'range': 'all'})
    assert csv_resp.status_code == 200
    assert csv_resp.headers['content-type'].startswith('text/csv')
    assert created['customer_id'] in csv_resp.text

    zip_resp = client.get("/api/images/download",
                          params={'startDate': '2025-06-01', 'endDate': '2025-06-30'})
    assert zip_resp.status_code == 200
    with zipfile.ZipFile(io.BytesIO(zip_resp.content)) as archive:
        assert archive.namelist() == [f"{created['customer_id']}/customer.jpg"]

    reversed_range = client.get("/api/images/download",
                                params={'startDate': '2025-06-30', 'endDate': '2025-06-01'})
    assert reversed_range.status_code == 400


def test_vision_text(client):
    resp = client.post("/api/vision/text", json={'image': encode_data_url(b'fake')})
    body = resp.json()

    assert resp.status_code == 200
    assert body['fields']['name'] == '박소연'
    assert body['fields']['phone'] == '010-5555-6666'
    assert body['fields']['work_date'] == '2025-07-01'

    assert client.post("/api/vision/text", json={'image': '***'}).status_code == 400


def test_image_search_json_and_multipart(client, customer_payload):
    client.post("/api/customers", json={
        **customer_payload,
        'work_image': encode_data_url(vase_image(), 'image/png'),
    })
    client.post("/api/customers", json={
        **customer_payload,
        'name': 'Other',
        'work_image': encode_data_url(solid_image((20, 40, 200)), 'image/png'),
    })

    by_json = client.post("/api/image-search",
                          json={'image': encode_data_url(vase_image(), 'image/png')}).json()
    assert by_json['candidates_scanned'] == 2
    assert by_json['results'][0]['customer']['name'] == '김도예'
    assert by_json['results'][0]['match_type'] == 'work'
    scores = [r['similarity'] for r in by_json['results']]
    assert scores == sorted(scores, reverse=True)

    by_form = client.post("/api/image-search", data={'threshold': '0', 'limit': '1'},
                          files={'image': ('q.png', vase_image(), 'image/png')}).json()
    assert len(by_form['results']) == 1


def test_image_search_edge_cases(client):
    empty = client.post("/api/image-search",
                        json={'image': encode_data_url(vase_image(), 'image/png')}).json()
    assert empty['results'] == []
    assert empty['no_matches'] is True
    assert empty['message'] == "No similar images found"

    for body in ({}, {'image': ''}):
        missing = client.post("/api/image-search", json=body)
        assert missing.status_code == 200
        assert missing.json()['results'] == []
        assert missing.json()['no_matches'] is True

    no_file = client.post("/api/image-search", data={'threshold': '0.5'},
                          files={'other': ('x.txt', b'x', 'text/plain')})
    assert no_file.status_code == 200
    assert no_file.json()['no_matches'] is True

    assert client.post("/api/image-search",
                       json={'image': encode_data_url(vase_image()), 'threshold': 2}).status_code == 400
