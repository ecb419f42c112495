"""Shared fixtures for QCS tests."""
import pytest


SAMPLE_REPORT = """\
Process:         Example [4242]
Path:            /Applications/Example.app/Contents/MacOS/Example
Identifier:      com.example.App
Version:         1.0 (1)
Code Type:       X86-64 (Native)
Parent Process:  launchd [1]

Date/Time:       2011-08-01 12:00:00.000 +1000
OS Version:      Mac OS X 10.6.8 (10K549)
Report Version:  6

Exception Type:  EXC_BAD_ACCESS (SIGSEGV)
Exception Codes: KERN_INVALID_ADDRESS at 0x0000000000000000
Crashed Thread:  0  Dispatch queue: com.apple.main-thread

Thread 0 Crashed:  Dispatch queue: com.apple.main-thread
0   com.example.App               0x0000000100001000 0x100000000 + 4096
1   com.apple.AppKit              0x00007fff8512a5f8 -[NSApplication run] + 395
2   com.example.App               0x0000000100001200 0x100000000 + 4608

Thread 1:  Dispatch queue: com.apple.libdispatch-manager
0   libSystem.B.dylib             0x00007fff83a0dc0a kevent + 10
1   com.example.App               0x0000000100001000 0x100000000 + 4096

Thread 0 crashed with X86 Thread State (64-bit):
  rax: 0x0000000000000000  rbx: 0x0000000100200000

Binary Images:
       0x100000000 -        0x100005fff +com.example.App (1.0 - 1) <6A1B2C3D-0000-1111-2222-333344445555> /Applications/Example.app/Contents/MacOS/Example
    0x7fff85000000 -     0x7fff85a00fff  com.apple.AppKit (6.6.8 - 1038.36) <04CFD4E8-2C9F-4C9B-A6B5-6C0F2B33A1A2> /System/Library/Frameworks/AppKit.framework/Versions/C/AppKit
"""


@pytest.fixture
def sample_report():
    """Synthetic Mac OS X crash report with two threads."""
    return SAMPLE_REPORT
