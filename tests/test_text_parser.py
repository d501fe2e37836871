from form_filler.text_parser import format_fields, match_line, parse_fields, parse_text


def test_colon_lines_and_blank_lines():
    result = parse_text("Name: Jane Doe\nEmail: jane@x.com\n\nPhone:555-1234")

    assert result.headers == ["Name", "Email", "Phone"]
    assert result.rows == [{"Name": "Jane Doe", "Email": "jane@x.com", "Phone": "555-1234"}]
    assert result.row_count == 1


def test_each_line_format():
    text = "\n".join(
        [
            "City = Berlin",
            "Country - Germany",
            "Currency | EUR",
            "IBAN\tDE89370400440532013000",
        ]
    )
    assert parse_fields(text) == {
        "City": "Berlin",
        "Country": "Germany",
        "Currency": "EUR",
        "IBAN": "DE89370400440532013000",
    }


def test_first_matching_pattern_wins():
    # colon is checked before equals and dash
    assert match_line("a=b: c") == {"a=b": "c"}
    assert match_line("Address: 12-14 Main St") == {"Address": "12-14 Main St"}
    # equals before dash
    assert match_line("range = 1-5") == {"range": "1-5"}
    # dash before pipe
    assert match_line("x - y | z") == {"x": "y | z"}


def test_tab_line_needs_exactly_two_columns():
    assert match_line("a\tb\tc") is None
    assert match_line("   ") is None
    assert match_line("just words") is None


def test_whole_document_json_wins_on_collisions():
    text = '{\n  "Name": "Jane",\n  "Age": 41,\n  "Member": true,\n  "Notes": null\n}'
    fields = parse_fields(text)

    assert fields["Name"] == "Jane"
    assert fields["Age"] == "41"
    assert fields["Member"] == "true"
    assert fields["Notes"] == ""


def test_keys_keep_case_and_spacing():
    result = parse_text("  First Name :  Jane  \nfirst name: jane")
    assert result.headers == ["First Name", "first name"]


def test_parsing_formatted_output_reproduces_mapping():
    original = parse_fields("Name = Jane Doe\nZip | 10115\nCompany\tACME GmbH\nNote: a=b")
    again = parse_fields(format_fields(original))
    assert again == original


def test_empty_text_gives_single_empty_row():
    result = parse_text("")
    assert result.headers == []
    assert result.rows == [{}]
