#!/usr/bin/env python3

import sys
import enum
import argparse
from io import StringIO


#: Marker of the lines that open or close a preformatted region.
FENCE_MARKER = "```"

#: Marker of the link lines.
LINK_MARKER = "=>"

#: Character used (repeated 1 to 3 times) to mark headings.
HEADING_MARKER = "#"

#: Maximum heading level supported by Gemtext.
MAX_HEADING_LEVEL = 3


# ==== ERRORS ====


class Gemtext2mdError(ValueError):
    """Base class of the errors that stop the conversion.

    :param int line_number: The (1-based) number of the faulty input line.
    :param str message: A human readable explanation (optional).
    """

    default_message = "conversion failed"

    def __init__(self, line_number, message=None):
        #: Number of the faulty input line (starting at 1)
        self.line_number = line_number
        #: Explanation of the error
        self.message = message or self.default_message
        ValueError.__init__(self, "line %i: %s" % (line_number, self.message))

    @property
    def kind(self):
        """The kind of error (name of the error class)."""
        return type(self).__name__


class MalformedInputError(Gemtext2mdError):
    """A line starts with a Gemtext marker but does not follow its grammar."""

    default_message = "malformed line"


class LinkSyntaxError(MalformedInputError):
    default_message = "expected '=> URL' or '=> URL CAPTION'"


class HeadingSyntaxError(MalformedInputError):
    default_message = "expected 1 to 3 '#', one space and the heading text"


class InputReadError(Gemtext2mdError):
    """The input could not be read or decoded."""

    default_message = "unable to read the input"


# ==== HELPERS ====


def convert_to_unix_end_of_line(text):
    """Replace Windows and old macOS end of line by Unix end of lines.

    :param str text: The text to process.
    :rtype: str
    :return: The text converted with unix end of lines.

    >>> convert_to_unix_end_of_line("Windows\\r\\nmacOS 9\\rand Unix\\n\\nEOL")
    'Windows\\nmacOS 9\\nand Unix\\n\\nEOL'
    """
    return text.replace("\r\n", "\n").replace("\r", "\n")


def split_lines(text):
    """Split a Gemtext document into numbered lines.

    A final end of line does not start an additional empty line.

    :param str text: The Gemtext document.
    :rtype: generator<(int, str)>

    >>> list(split_lines("# Title\\r\\n\\nfoo\\n"))
    [(1, '# Title'), (2, ''), (3, 'foo')]
    >>> list(split_lines(""))
    []
    """
    lines = convert_to_unix_end_of_line(text).split("\n")
    if lines[-1] == "":
        lines.pop()
    for line_number, line in enumerate(lines, start=1):
        yield line_number, line


def read_lines(stream):
    """Read numbered lines from a file object.

    Binary streams are decoded as UTF-8 line by line, so a decoding error can
    be reported with the number of the offending line. Lines are numbered the
    same way as :func:`split_lines` (LF, CR LF and CR end of lines).

    :param stream: A binary (or text) file object.
    :rtype: generator<(int, str)>
    :raise InputReadError: if the stream cannot be read or decoded.
    """
    lines = iter(stream)
    line_number = 0
    while True:
        try:
            line = next(lines)
        except StopIteration:
            return
        except OSError as error:
            raise InputReadError(line_number + 1, str(error)) from error
        if isinstance(line, bytes):
            try:
                line = line.decode("UTF-8")
            except UnicodeDecodeError as error:
                raise InputReadError(
                    line_number + 1, "invalid UTF-8 data (%s)" % error.reason
                ) from error
        texts = convert_to_unix_end_of_line(line).split("\n")
        if texts[-1] == "":
            texts.pop()
        for text in texts:
            line_number += 1
            yield line_number, text


def close_file(file_):
    """Close a file opened from the command line, unless it is a standard
    stream.

    :param file_: A file object returned by ``argparse.FileType``.
    """
    if file_ in (sys.stdin, sys.stdout, getattr(sys.stdin, "buffer", None)):
        return
    file_.close()


# ==== DATA MODEL ====


class HeadingLevel(enum.IntEnum):
    """Level of a heading (the number of ``#`` of its marker)."""

    LEVEL1 = 1
    LEVEL2 = 2
    LEVEL3 = 3

    @property
    def marker(self):
        """The heading marker of the level.

        >>> HeadingLevel.LEVEL2.marker
        '##'
        """
        return HEADING_MARKER * self.value


class Record:
    """Base class of the value objects (compared by type and attributes)."""

    def __eq__(self, other):
        return type(self) is type(other) and vars(self) == vars(other)

    def __repr__(self):
        return "%s(%s)" % (
            type(self).__name__,
            ", ".join("%s=%r" % item for item in vars(self).items()),
        )


class Link(Record):
    def __init__(self, url, caption=None):
        self.url = url
        self.caption = caption

    @property
    def label(self):
        """The text of the link: its caption, or its URL if it has none."""
        if self.caption is None:
            return self.url
        return self.caption


class Heading(Record):
    def __init__(self, level, text):
        self.level = HeadingLevel(level)
        self.text = text


# Classified lines


class Line(Record):
    """Base class of the classified Gemtext lines.

    :param int line_number: The number of the input line (the first one for
                            preformatted lines).
    """

    def __init__(self, line_number=0):
        self.line_number = line_number


class PreformattedLine(Line):
    def __init__(self, lines, line_number=0):
        Line.__init__(self, line_number)
        self.lines = list(lines)


class ParagraphLine(Line):
    def __init__(self, text, line_number=0):
        Line.__init__(self, line_number)
        self.text = text


class LinkLine(Line):
    def __init__(self, link, line_number=0):
        Line.__init__(self, line_number)
        self.link = link


class HeadingLine(Line):
    def __init__(self, heading, line_number=0):
        Line.__init__(self, line_number)
        self.heading = heading


class BlankLine(Line):
    pass


class MalformedLine(Line):
    """A line that does not follow the grammar of its marker.

    :param kind: The error class (``LinkSyntaxError`` or
                 ``HeadingSyntaxError``).
    """

    def __init__(self, kind, line_number=0):
        Line.__init__(self, line_number)
        self.kind = kind

    def to_error(self):
        return self.kind(self.line_number)


# Blocks


class Block(Record):
    """Base class of the blocks, the units of Markdown rendering."""

    def to_markdown(self):
        """Generates the Markdown text of the block."""
        raise NotImplementedError()


class PreformattedBlock(Block):
    def __init__(self, lines):
        self.lines = list(lines)

    def to_markdown(self):
        return "%s\n%s\n%s\n\n" % (FENCE_MARKER, "\n".join(self.lines), FENCE_MARKER)


class ParagraphBlock(Block):
    def __init__(self, text):
        self.text = text

    def to_markdown(self):
        return "%s\n\n" % self.text


class LinksBlock(Block):
    def __init__(self, links):
        self.links = list(links)

    def to_markdown(self):
        if not self.links:
            return ""
        items = ["* [%s](%s)\n" % (link.label, link.url) for link in self.links]
        return "".join(items) + "\n"


class HeadingBlock(Block):
    def __init__(self, heading):
        self.heading = heading

    def to_markdown(self):
        return "%s %s\n\n" % (self.heading.level.marker, self.heading.text)


# ==== PIPELINE ====


def gather_preformatted(lines):
    """Tag each line with whether it is inside a preformatted region.

    Fence lines (starting with three backticks) toggle the region and are
    dropped. An unclosed region runs until the end of the input.

    :param lines: Iterable of ``(line_number, text)``.
    :rtype: generator<(bool, int, str)>

    >>> list(gather_preformatted([(1, "a"), (2, "```sh"), (3, "b"), (4, "```")]))
    [(False, 1, 'a'), (True, 3, 'b')]
    """
    preformatted = False
    for line_number, text in lines:
        if text[: len(FENCE_MARKER)] == FENCE_MARKER:
            preformatted = not preformatted
            continue
        yield preformatted, line_number, text


def parse_link(text, line_number=0):
    """Parses a line starting with the link marker.

    :param str text: The raw line.
    :param int line_number: The number of the line.
    :rtype: Line

    >>> parse_link("=> gemini://example.org An example").link
    Link(url='gemini://example.org', caption='An example')
    >>> parse_link("=>gemini://example.org").kind.__name__
    'LinkSyntaxError'
    """
    fields = text.split(" ", 2)
    if fields[0] != LINK_MARKER or len(fields) < 2 or not fields[1]:
        return MalformedLine(LinkSyntaxError, line_number)
    caption = fields[2] if len(fields) == 3 and fields[2] else None
    return LinkLine(Link(fields[1], caption), line_number)


def parse_heading(trimmed_text, line_number=0):
    """Parses a (trimmed) line starting with the heading marker.

    The heading text starts right after the ``#`` and their separating space.

    :param str trimmed_text: The line, without leading and trailing spaces.
    :param int line_number: The number of the line.
    :rtype: Line

    >>> parse_heading("## Section").heading
    Heading(level=<HeadingLevel.LEVEL2: 2>, text='Section')
    >>> parse_heading("##Section").kind.__name__
    'HeadingSyntaxError'
    """
    level = len(trimmed_text) - len(trimmed_text.lstrip(HEADING_MARKER))
    if (
        level > MAX_HEADING_LEVEL
        or trimmed_text[level : level + 1] != " "
        or len(trimmed_text) <= level + 1
    ):
        return MalformedLine(HeadingSyntaxError, line_number)
    heading = Heading(HeadingLevel(level), trimmed_text[level + 1 :])
    return HeadingLine(heading, line_number)


def classify_line(text, line_number=0):
    """Classifies a line that is not part of a preformatted region.

    NOTE: the line is trimmed before looking for a heading marker, so an
    indented heading (``"  # Title"``) is still a heading.

    :param str text: The raw line.
    :param int line_number: The number of the line.
    :rtype: Line

    >>> classify_line("")
    BlankLine(line_number=0)
    >>> classify_line("  Some text ")
    ParagraphLine(line_number=0, text='Some text')
    """
    if not text:
        return BlankLine(line_number)
    if text.startswith(LINK_MARKER):
        return parse_link(text, line_number)
    trimmed_text = text.strip()
    if trimmed_text.startswith(HEADING_MARKER):
        return parse_heading(trimmed_text, line_number)
    return ParagraphLine(trimmed_text, line_number)


def decode_lines(tagged_lines):
    """Classifies the lines, grouping each preformatted run in one line.

    :param tagged_lines: Iterable of ``(preformatted, line_number, text)``
                         (see :func:`gather_preformatted`).
    :rtype: generator<Line>
    """
    preformatted_lines = []
    first_line_number = 0
    for preformatted, line_number, text in tagged_lines:
        if preformatted:
            if not preformatted_lines:
                first_line_number = line_number
            preformatted_lines.append(text)
            continue
        if preformatted_lines:
            yield PreformattedLine(preformatted_lines, first_line_number)
            preformatted_lines = []
        yield classify_line(text, line_number)
    # Unclosed preformatted region
    if preformatted_lines:
        yield PreformattedLine(preformatted_lines, first_line_number)


def blocks_of_lines(lines):
    """Groups the classified lines into blocks.

    Consecutive links are gathered in a single :class:`LinksBlock`, emitted
    when any other line shows up (blank lines included) or at the end of the
    input. Empty link groups are never emitted.

    :param lines: Iterable of :class:`Line`.
    :rtype: generator<Block>
    :raise MalformedInputError: on the first malformed line.
    """
    links = []
    for line in lines:
        if type(line) is LinkLine:
            links.append(line.link)
            continue
        if type(line) is MalformedLine:
            raise line.to_error()
        if links:
            yield LinksBlock(links)
            links = []
        if type(line) is ParagraphLine:
            yield ParagraphBlock(line.text)
        elif type(line) is HeadingLine:
            yield HeadingBlock(line.heading)
        elif type(line) is PreformattedLine:
            yield PreformattedBlock(line.lines)
        elif type(line) is not BlankLine:
            raise TypeError("Unexpected line: %r" % line)
    if links:
        yield LinksBlock(links)


def parse_gemtext(lines):
    """Parses numbered Gemtext lines into blocks.

    :param lines: Iterable of ``(line_number, text)`` (see
                  :func:`split_lines` and :func:`read_lines`).
    :rtype: generator<Block>
    """
    return blocks_of_lines(decode_lines(gather_preformatted(lines)))


def render_blocks(blocks):
    """Renders each block as Markdown.

    :rtype: generator<str>
    """
    for block in blocks:
        yield block.to_markdown()


def write_blocks(blocks, output):
    """Writes the blocks to a text file object, flushing after each block.

    :param blocks: Iterable of :class:`Block`.
    :param output: A writable text file object.
    """
    for markdown in render_blocks(blocks):
        output.write(markdown)
        output.flush()


def convert(gemtext_text):
    """Convert the input Gemtext to Markdown.

    :param str gemtext_text: The input Gemtext.

    :rtype: str
    :return: The converted Markdown.
    :raise MalformedInputError: if the document contains a malformed line.

    >>> convert("# Title\\n\\n=> https://example.org Example\\nplain text\\n")
    '# Title\\n\\n* [Example](https://example.org)\\n\\nplain text\\n\\n'
    """
    output_io = StringIO()
    write_blocks(parse_gemtext(split_lines(gemtext_text)), output_io)
    return output_io.getvalue()


def main(args=sys.argv[1:]):
    parser = argparse.ArgumentParser(
        prog="gemtext2md",
        description="Converts Gemtext (Gemini markup format) to Markdown",
    )

    parser.add_argument(
        "input_gemtext",
        help="the Gemtext file to convert (default: standard input)",
        nargs="?",
        default="-",
        type=argparse.FileType("rb"),
    )
    parser.add_argument(
        "output_markdown",
        help="the output Markdown file (default: standard output)",
        nargs="?",
        default="-",
        type=argparse.FileType("w", encoding="UTF-8"),
    )

    params = parser.parse_args(args)

    # argparse.FileType ignores the encoding for "-"
    if params.output_markdown is sys.stdout and hasattr(sys.stdout, "reconfigure"):
        sys.stdout.reconfigure(encoding="UTF-8")

    lines = read_lines(params.input_gemtext)

    try:
        try:
            write_blocks(parse_gemtext(lines), params.output_markdown)
        finally:
            close_file(params.input_gemtext)
            close_file(params.output_markdown)
    except Gemtext2mdError as error:
        print(
            "gemtext2md: %s:%i: %s: %s"
            % (
                params.input_gemtext.name,
                error.line_number,
                error.kind,
                error.message,
            ),
            file=sys.stderr,
        )
        return 1
    except (OSError, UnicodeError) as error:
        print(
            "gemtext2md: %s: %s: %s"
            % (
                params.output_markdown.name,
                type(error).__name__,
                error,
            ),
            file=sys.stderr,
        )
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
