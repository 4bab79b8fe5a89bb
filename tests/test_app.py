import io

from marketplace.auth import VENDOR_ROLE


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.get_json() == {"status": 200, "message": "ok"}


def test_unexpected_errors_do_not_leak_details(app, client):
    def explode():
        raise RuntimeError("database password is hunter2")

    app.add_url_rule("/explode", "explode", explode)

    response = client.get("/explode")
    assert response.status_code == 500
    assert response.get_json() == {"status": 500, "message": "Internal server error."}


def test_unknown_route_uses_envelope(client):
    response = client.get("/nowhere")
    assert response.status_code == 404
    assert response.get_json()["status"] == 404


def test_uploaded_files_are_served(app, client):
    upload_folder = app.config["UPLOAD_FOLDER"]
    with open(f"{upload_folder}/sample.png", "wb") as handle:
        handle.write(b"png-bytes")

    response = client.get("/uploads/sample.png")
    assert response.status_code == 200
    assert response.data == b"png-bytes"
    assert client.get("/uploads/missing.png").status_code == 404


def test_upload_size_limit(app, client, auth_header, marketplace):
    app.config["MAX_CONTENT_LENGTH"] = 1024
    response = client.post(
        "/products",
        data={"name": "Big", "nutrition": (io.BytesIO(b"x" * 4096), "big.pdf")},
        headers=auth_header(marketplace["sunny"], VENDOR_ROLE),
        content_type="multipart/form-data",
    )
    assert response.status_code == 413
