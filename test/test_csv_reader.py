from bulk_export_client.csv_reader import read_rows

EXPORT = (
    "marketoGUID,leadId,attributes\n"
    '1001,42,"{""Campaign"": ""Spring, 2024""}"\n'
    '1002,43,"multi\nline"\n'
)


def test_header_is_skipped_and_rows_mapped():
    rows = list(read_rows(EXPORT, lambda fields: fields[1]))

    assert rows == ["42", "43"]


def test_quoted_fields_keep_commas_and_newlines():
    rows = list(read_rows(EXPORT, lambda fields: fields[2]))

    assert rows == ['{"Campaign": "Spring, 2024"}', "multi\nline"]


def test_without_header_every_record_is_mapped():
    rows = list(read_rows("a,b\nc,d\n", tuple, has_header=False))

    assert rows == [("a", "b"), ("c", "d")]


def test_rows_are_single_pass():
    rows = read_rows("h\n1\n2\n", lambda fields: fields[0])

    assert next(rows) == "1"
    assert list(rows) == ["2"]
    assert list(rows) == []


def test_mapping_is_lazy():
    seen = []

    def action(fields):
        seen.append(fields)
        return fields

    rows = read_rows("h\n1\n2\n", action)
    assert seen == []

    next(rows)
    assert seen == [["1"]]


def test_empty_file_yields_nothing():
    assert list(read_rows("", lambda fields: fields)) == []


def test_blank_lines_are_skipped():
    rows = list(read_rows("h\n1\n\n2\n", lambda fields: fields[0]))

    assert rows == ["1", "2"]
