from dotenv import load_dotenv

load_dotenv(".env.local"); load_dotenv()  # also loads .env if present

# app.py
import os

import pandas as pd
import requests
import streamlit as st

st.set_page_config(page_title="PDF Form Filler", layout="wide")

BACKEND = os.getenv("BACKEND_URL", "http://127.0.0.1:8000")
API = f"{BACKEND}/api"

# Session state
for key, default in {
    "upload": None,
    "parsed": None,
    "fill_result": None,
}.items():
    st.session_state.setdefault(key, default)


def _error_text(resp: requests.Response) -> str:
    try:
        return resp.json().get("detail", resp.text)
    except ValueError:
        return resp.text


def reset():
    st.session_state.update(upload=None, parsed=None, fill_result=None)


st.sidebar.title("PDF Form Filler")
st.sidebar.button("Start over", on_click=reset)
try:
    health = requests.get(f"{BACKEND}/health", timeout=5).json()
    st.sidebar.caption(
        "Backend online · API key " + ("configured" if health.get("api_key_configured") else "missing")
    )
except requests.RequestException:
    st.sidebar.error(f"Backend not reachable at {BACKEND}")


# ------------- Step 1: upload -------------
st.header("1. Upload")
mode = st.radio("Data source", ["CSV file", "Filled PDF", "Manual text"], horizontal=True)
template = st.file_uploader("PDF form template", type=["pdf"], key="template")
data_file = None
if mode == "CSV file":
    data_file = st.file_uploader("CSV data", type=["csv"], key="csv")
elif mode == "Filled PDF":
    data_file = st.file_uploader("Filled PDF with the data", type=["pdf"], key="data_pdf")
text_data = st.text_area("Field data", height=180, placeholder="Name: Jane Doe\nEmail: jane@example.com") \
    if mode == "Manual text" else None

if st.button("Upload & parse", disabled=template is None):
    files = {"pdf": (template.name, template.getvalue(), "application/pdf")}
    if data_file is not None:
        field = "csv" if mode == "CSV file" else "data_pdf"
        mime = "text/csv" if field == "csv" else "application/pdf"
        files[field] = (data_file.name, data_file.getvalue(), mime)

    r = requests.post(f"{API}/upload", files=files, timeout=60)
    if not r.ok:
        st.error(f"Upload failed: {_error_text(r)}")
    else:
        upload = r.json()
        st.session_state["upload"] = upload
        st.session_state["fill_result"] = None
        data_type = upload["data_type"]
        if data_type == "csv":
            r = requests.post(f"{API}/parse-csv", json={"csv_path": upload["files"]["csv"]["path"]}, timeout=60)
        elif data_type == "pdf":
            with st.spinner("Extracting data from PDF (OCR can take a few minutes)..."):
                r = requests.post(f"{API}/parse-pdf", json={"pdf_path": upload["files"]["data_pdf"]["path"]}, timeout=300)
        else:
            r = requests.post(f"{API}/parse-text", json={"text": text_data or ""}, timeout=60)

        if r.ok:
            parsed = r.json()
            parsed["text_data"] = text_data if data_type == "text" else None
            st.session_state["parsed"] = parsed
        else:
            st.session_state["parsed"] = None
            st.error(f"Parsing failed: {_error_text(r)}")


# ------------- Step 2: pick a row -------------
parsed = st.session_state.get("parsed")
upload = st.session_state.get("upload")
if parsed and upload:
    st.header("2. Select data")
    data = parsed["data"]
    if parsed.get("method"):
        st.caption(f"Extraction method: {parsed['method']} · {parsed.get('extracted_field_count', 0)} field(s)")
    if parsed.get("message"):
        st.warning(parsed["message"])

    df = pd.DataFrame(data["rows"], columns=data["headers"])
    st.dataframe(df, use_container_width=True)

    with st.expander("Field descriptions"):
        st.json(parsed.get("field_mappings", {}))

    row_count = data.get("row_count", len(data["rows"]))
    row_index = st.number_input("Row", min_value=0, max_value=max(row_count - 1, 0), value=0, step=1) \
        if row_count > 1 else 0
    context = st.text_input("Context for the filler (optional)")

    # ------------- Step 3: fill -------------
    st.header("3. Fill")
    if st.button("Fill form", disabled=row_count == 0):
        body = {
            "pdf_path": upload["files"]["pdf"]["path"],
            "row_index": int(row_index),
            "context": context or None,
        }
        if upload["data_type"] == "csv":
            body["csv_path"] = upload["files"]["csv"]["path"]
        elif upload["data_type"] == "pdf":
            body["data_pdf_path"] = upload["files"]["data_pdf"]["path"]
        else:
            body["text_data"] = parsed.get("text_data")

        with st.spinner("Filling form via Datalab..."):
            r = requests.post(f"{API}/fill-form", json=body, timeout=600)
        if r.ok:
            st.session_state["fill_result"] = r.json()
        else:
            st.error(f"Form filling failed: {_error_text(r)}")

    result = st.session_state.get("fill_result")
    if result:
        filename = result["filled_pdf_filename"]
        st.success(f"Form filled · {result.get('fields_filled_count', 0)} field(s) · request {result.get('request_id')}")
        r = requests.get(f"{API}/download/{filename}", timeout=60)
        if r.ok:
            st.download_button("Download filled PDF", data=r.content, file_name=filename, mime="application/pdf")
        else:
            st.error(f"Download failed: {_error_text(r)}")
