"""Cache keys shared by readers and the writers that invalidate them."""

DOCTORS_LIST = "doctors_list"


def doctor_key(doctor_id: str) -> str:
    return f"doctor_{doctor_id}"


def slots_key(doctor_id: str, date: str) -> str:
    return f"slots_{doctor_id}_{date}"
