from pathlib import Path
from warnings import catch_warnings, simplefilter
from chat_core.errors import FormatError
from chat_core.protocol import MAXIMUM_MESSAGE_SIZE
from chat_store.scan import StrictJudge
from .const import ERRORS

def _fail(errors):
    return {"status":"FAIL","error_count":len(errors),"errors":errors}

def verify_store(db_path: Path, capacity: int = MAXIMUM_MESSAGE_SIZE, strict: bool = False) -> dict:
    """Read-only check of a chat store.

    Empty allocated slots and untracked data only fail the run when strict is set.
    """
    errors = []
    if not db_path.is_file():
        errors.append({"code":"E_LAYOUT_MISSING","message":ERRORS["E_LAYOUT_MISSING"],"path":str(db_path)})
        return _fail(errors)

    try:
        # Findings are reported in the result; keep the scan quiet.
        with catch_warnings():
            simplefilter("ignore")
            judge = StrictJudge(db_path, capacity)
    except FormatError as e:
        errors.append({"code":"E_HEADER_INVALID","message":ERRORS["E_HEADER_INVALID"],"detail":str(e)})
        return _fail(errors)
    # The scan happens on construction; everything below reads the index.
    judge.close()

    records = {}
    for rid in sorted(judge.index):
        rec = judge.index[rid]
        stat = rec["status"]
        records[str(rid)] = {"status":stat,"content_hash":rec["content_hash"]}
        if stat == "VERIFIED":
            continue
        if stat == "UNTRACKED":
            code = "E_RECORD_UNTRACKED"
        elif stat in ("EMPTY", "EOF"):
            code = "E_RECORD_EMPTY"
        else:
            code = "E_RECORD_CORRUPT"
        if code == "E_RECORD_CORRUPT" or strict:
            errors.append({"code":code,"message":ERRORS[code],"id":rid,"detail":stat})

    result = _fail(errors) if errors else {"status":"PASS","error_count":0,"errors":[]}
    result["count"] = judge.header.count
    result["high_water"] = judge.high_water
    result["records"] = records
    return result
