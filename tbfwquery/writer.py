"""
Indented text output.

Every entity that can be reported (versions, firmware descriptors, record sets,
query results and the database) implements `Printable.render` against an
`IndentingWriter`.
"""
import abc
import contextlib
from typing import Any, Iterator, List


INDENTATION: str = "    "
"""One level of indentation"""


class IndentingWriter(abc.ABC):
    """A writer that supports indentation"""

    @abc.abstractmethod
    def print(self, contents: Any) -> None:
        """Print the contents"""
        ...

    @abc.abstractmethod
    def println(self, contents: Any = "") -> None:
        """Print the contents followed by a line feed"""
        ...

    @abc.abstractmethod
    def indent(self) -> None:
        ...

    @abc.abstractmethod
    def outdent(self) -> None:
        ...

    @contextlib.contextmanager
    def indented(self) -> Iterator["IndentingWriter"]:
        """Indent the writer for the duration of the block"""
        self.indent()
        try:
            yield self
        finally:
            self.outdent()


class StringWriter(IndentingWriter):
    """In-memory writer

    Attributes:
        indentation: Current indentation level
        column: Current column
    """

    def __init__(self) -> None:
        self._buffer: List[str] = []
        self.indentation: int = 0
        self.column: int = 0

    def print(self, contents: Any) -> None:
        text = str(contents)

        if self.column == 0 and text:
            prefix = INDENTATION * self.indentation
            self._buffer.append(prefix)
            self.column = len(prefix)

        self._buffer.append(text)

        last_line_feed = text.rfind("\n")
        if last_line_feed == -1:
            self.column += len(text)
        else:
            self.column = len(text) - last_line_feed - 1

    def println(self, contents: Any = "") -> None:
        self.print(contents)
        self._buffer.append("\n")
        self.column = 0

    def indent(self) -> None:
        self.indentation += 1

    def outdent(self) -> None:
        if self.indentation == 0:
            raise ValueError("Unable to outdent below the first column")
        self.indentation -= 1

    def getvalue(self) -> str:
        """Contents written so far"""
        return "".join(self._buffer)

    def __str__(self) -> str:
        return self.getvalue()


class Printable(abc.ABC):
    """Something able to render itself on an IndentingWriter"""

    @abc.abstractmethod
    def render(self, writer: IndentingWriter) -> None:
        ...

    def to_string(self) -> str:
        """Render into a fresh StringWriter"""
        writer = StringWriter()
        self.render(writer)
        return writer.getvalue()
