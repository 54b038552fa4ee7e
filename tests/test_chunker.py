import pytest

from portal.ingest.chunker import chunk_content


def test_short_text_is_single_chunk() -> None:
    assert chunk_content("hello world", 100) == ["hello world"]


def test_paragraphs_are_packed_greedily() -> None:
    text = "aaaa\n\nbbbb\n\ncccc"
    # "aaaa\n\nbbbb" = 10 chars; adding "cccc" would need 16
    assert chunk_content(text, 12) == ["aaaa\n\nbbbb", "cccc"]


def test_chunks_rejoin_to_original_paragraphs() -> None:
    paragraphs = [f"Paragraph number {i} has some words." for i in range(20)]
    text = "\n\n".join(paragraphs)

    chunks = chunk_content(text, 120)
    assert len(chunks) > 1
    assert "\n\n".join(chunks) == text


def test_no_chunk_exceeds_max_size() -> None:
    long_para = " ".join(f"Sentence {i} ends here." for i in range(50))
    text = "Intro.\n\n" + long_para + "\n\nOutro."

    chunks = chunk_content(text, 80)
    assert all(len(c) <= 80 for c in chunks)
    assert chunks[0] == "Intro."
    assert chunks[-1].endswith("Outro.")


def test_oversize_paragraph_splits_on_sentence_boundaries() -> None:
    para = "One two three. Four five six! Seven eight nine? Ten."
    chunks = chunk_content(para, 25)
    assert chunks == ["One two three.", "Four five six!", "Seven eight nine? Ten."]


def test_single_sentence_longer_than_max_is_hard_split() -> None:
    sentence = "x" * 25
    chunks = chunk_content(sentence + "\n\nend", 10)
    assert all(len(c) <= 10 for c in chunks)
    assert chunks[:2] == ["x" * 10, "x" * 10]
    assert chunks[2] == "xxxxx\n\nend"


def test_invalid_max_size() -> None:
    with pytest.raises(ValueError):
        chunk_content("text", 0)
