from tablib import Dataset

from roster.reconcile import ImportKind

TEMPLATE_FILENAMES: dict[ImportKind, str] = {
    ImportKind.participants: "YIN_Participant_Import_Template.csv",
    ImportKind.club_members: "YIN_Club_Import_Template.csv",
    ImportKind.event_attendees: "YIN_Event_Attendee_Import_Template.csv",
    ImportKind.volunteers: "YIN_Volunteer_Import_Template.csv",
}

# One example row per importer. MEMBERS accepts YES, NO or N/A; Role must be one
# of the volunteer roles; StartDate is YYYY-MM-DD.
_TEMPLATE_ROWS: dict[ImportKind, dict[str, str]] = {
    ImportKind.participants: {
        "NAMES": "Eunice Clottey",
        "CONTACT": "595016141",
        "INSTITUTION": "UG",
        "MEMBERS": "YES",
        "GENDER": "Female",
        "REGION": "Greater Accra",
        "GHANA CARD": "GHA-123456789-0",
        "NOTES": "Optional notes here",
    },
    ImportKind.club_members: {
        "Name": "John Doe",
        "Contact": "john.d@example.com",
        "Gender": "Male",
        "Region": "Greater Accra",
        "Ghana Card": "GHA-123456789-0",
        "Contestant": "NO",
    },
    ImportKind.event_attendees: {
        "Name": "Ama Mensah",
        "Contact": "0201234567",
        "Institution": "KNUST",
        "Gender": "Female",
        "Region": "Ashanti",
        "Ghana Card": "GHA-123456789-0",
    },
    ImportKind.volunteers: {
        "Name": "Jane Doe",
        "Contact": "jane.d@example.com",
        "Institution": "University of Ghana",
        "Role": "Event Staff",
        "StartDate": "2024-08-01",
        "Gender": "Female",
        "Region": "Greater Accra",
        "Ghana Card": "GHA-123456789-0",
    },
}


def import_template_dataset(kind: ImportKind) -> Dataset:
    row = _TEMPLATE_ROWS[kind]
    dataset = Dataset(headers=list(row))
    dataset.append(list(row.values()))
    return dataset
