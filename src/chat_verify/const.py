ERRORS = {
  "E_LAYOUT_MISSING": "Store file missing",
  "E_HEADER_INVALID": "Header magic, version or length invalid",
  "E_RECORD_EMPTY": "Allocated record holds no data",
  "E_RECORD_CORRUPT": "Record fails offset, id or length checks",
  "E_RECORD_UNTRACKED": "Record data found beyond allocated count",
}
