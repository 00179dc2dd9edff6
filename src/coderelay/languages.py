"""Language catalog: runner ids, display names and the interactive capability."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path, PurePath

from coderelay.errors import CodeRelayError, ExitCode


@dataclass(frozen=True)
class LanguageSpec:
    key: str
    runner_id: int
    name: str
    interactive: bool
    editor_mode: str
    extension: str
    default_source: str = ""

    @property
    def wire_name(self) -> str:
        # The terminal service identifies languages by lower-cased display name.
        return self.name.lower()


_PYTHON_SOURCE = """# Welcome to CodeIDE
print("Hello, World!")

# Try some basic operations
name = input("Enter your name: ")
print(f"Hello, {name}!")

# Math operations
a = 10
b = 20
print(f"Sum: {a + b}")
"""

_C_SOURCE = """#include <stdio.h>

int main() {
    printf("Hello, World!\\n");

    char name[100];
    printf("Enter your name: ");
    scanf("%s", name);
    printf("Hello, %s!\\n", name);

    int a = 10, b = 20;
    printf("Sum: %d\\n", a + b);

    return 0;
}
"""

_CPP_SOURCE = """#include <iostream>
#include <string>
using namespace std;

int main() {
    cout << "Hello, World!" << endl;

    string name;
    cout << "Enter your name: ";
    cin >> name;
    cout << "Hello, " << name << "!" << endl;

    int a = 10, b = 20;
    cout << "Sum: " << a + b << endl;

    return 0;
}
"""

_JAVA_SOURCE = """import java.util.Scanner;

public class Main {
    public static void main(String[] args) {
        System.out.println("Hello, World!");

        Scanner scanner = new Scanner(System.in);
        System.out.print("Enter your name: ");
        String name = scanner.nextLine();
        System.out.println("Hello, " + name + "!");

        int a = 10, b = 20;
        System.out.println("Sum: " + (a + b));

        scanner.close();
    }
}
"""

_JAVASCRIPT_SOURCE = """// Welcome to CodeIDE
console.log("Hello, World!");

const a = 10;
const b = 20;
console.log(`Sum: ${a + b}`);
"""

_GO_SOURCE = """package main

import "fmt"

func main() {
    fmt.Println("Hello, World!")

    a, b := 10, 20
    fmt.Printf("Sum: %d\\n", a+b)
}
"""

DEFAULT_LANGUAGES: tuple[LanguageSpec, ...] = (
    LanguageSpec("python", 71, "Python", True, "python", ".py", _PYTHON_SOURCE),
    LanguageSpec("c", 50, "C", True, "c", ".c", _C_SOURCE),
    LanguageSpec("cpp", 54, "C++", True, "cpp", ".cpp", _CPP_SOURCE),
    LanguageSpec("java", 62, "Java", True, "java", ".java", _JAVA_SOURCE),
    LanguageSpec("javascript", 63, "JavaScript", False, "javascript", ".js", _JAVASCRIPT_SOURCE),
    LanguageSpec("go", 60, "Go", False, "go", ".go", _GO_SOURCE),
)


class LanguageCatalog:
    def __init__(self, languages: Iterable[LanguageSpec] = DEFAULT_LANGUAGES) -> None:
        self._languages: dict[str, LanguageSpec] = {}
        for spec in languages:
            self.register(spec)

    def register(self, spec: LanguageSpec) -> LanguageSpec:
        key = _normalize_key(spec.key)
        if not key:
            raise CodeRelayError(
                "Language key cannot be empty.",
                code=ExitCode.VALIDATION_ERROR,
                hint="Give every catalog entry a non-empty key.",
            )
        if key in self._languages:
            raise CodeRelayError(
                f"Language already registered: {key}",
                code=ExitCode.VALIDATION_ERROR,
                hint="Use a unique language key.",
            )
        self._languages[key] = spec
        return spec

    def find(self, key: str) -> LanguageSpec | None:
        return self._languages.get(_normalize_key(key))

    def get(self, key: str) -> LanguageSpec:
        spec = self.find(key)
        if spec is None:
            accepted = ", ".join(self.keys())
            raise CodeRelayError(
                f"Unknown language: {key}",
                code=ExitCode.VALIDATION_ERROR,
                hint=f"Choose one of: {accepted}.",
            )
        return spec

    def is_interactive(self, key: str) -> bool:
        spec = self.find(key)
        return spec is not None and spec.interactive

    def keys(self) -> list[str]:
        return list(self._languages)

    def list_languages(self) -> list[LanguageSpec]:
        return list(self._languages.values())

    def for_path(self, path: str | Path | PurePath) -> LanguageSpec | None:
        suffix = PurePath(path).suffix.lower()
        if not suffix:
            return None
        for spec in self._languages.values():
            if spec.extension == suffix:
                return spec
        return None

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and _normalize_key(key) in self._languages

    def __len__(self) -> int:
        return len(self._languages)


def _normalize_key(key: str) -> str:
    return key.strip().lower()


def default_catalog() -> LanguageCatalog:
    return LanguageCatalog(DEFAULT_LANGUAGES)
