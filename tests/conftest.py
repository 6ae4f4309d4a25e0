import pytest

from callsheet.extraction.roles import get_role_vocabulary


@pytest.fixture
def vocabulary():
    """Packaged role vocabulary."""
    return get_role_vocabulary()


@pytest.fixture
def sample_call_sheet() -> str:
    """Typical call sheet text as it comes out of a PDF."""
    return (
        "SPRING LOOKBOOK - CALL SHEET\n"
        "Shoot Date: Tuesday, March 12\n"
        "Call Time: 7:00 AM\n"
        "Location: 72 Greene Ave, Brooklyn NY 11238\n"
        "\n"
        "PRODUCTION\n"
        "PRODUCER: Sarah Connor / sarah.connor@example.com / 212-555-0101\n"
        "PHOTOGRAPHER: John Doe / 917-555-1234\n"
        "MAKEUP ARTIST: Emily Blunt / emily@example.com\n"
        "\n"
        "TALENT\n"
        "MODEL: Grace Jones / grace@agency.com / (646) 555-0199\n"
        "\n"
        "Weather: Sunny, 68F\n"
        "Nearest Hospital: Brooklyn Hospital Center\n"
    )


@pytest.fixture
def synthetic_call_sheet() -> str:
    """One hundred generated crew lines."""
    return "\n".join(
        f"ROLE {i}: Person {i} / person{i}@example.com / 917-555-{i:04d}"
        for i in range(100)
    )
