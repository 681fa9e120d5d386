"""
Cross-site scripting signatures.
"""

import re

from threatlens.detection.patterns.base import signature_entries
from threatlens.models.finding import Severity, ThreatCategory


XSS_PATTERNS = signature_entries(
    category=ThreatCategory.XSS,
    title_prefix="XSS Detected",
    mitre_tactic="Initial Access",
    mitre_technique="T1189 - Drive-by Compromise",
    recommendation=(
        "Implement context-aware output encoding for all user-supplied data. "
        "Use Content Security Policy (CSP) headers to restrict inline script execution. "
        "Sanitize HTML input with a library like DOMPurify. Validate input on both client and server side."
    ),
    specs=[
        (re.compile(r"<\s*script[^>]*>", re.I), "<script> tag injection", Severity.HIGH, 0.95,
         "Cross-site scripting attempt using inline script tag to execute arbitrary JavaScript"),
        (re.compile(r"<\s*/\s*script\s*>", re.I), "</script> closing tag", Severity.HIGH, 0.9,
         "Closing script tag detected, indicating possible script injection payload"),
        (re.compile(r"%3C\s*script", re.I), "URL-encoded <script>", Severity.HIGH, 0.9,
         "Cross-site scripting attempt using URL-encoded script tags to bypass input filters"),
        (re.compile(r"&lt;\s*script", re.I), "HTML-encoded <script>", Severity.MEDIUM, 0.8,
         "HTML-encoded script tag detected; may indicate XSS attempt or double-encoding bypass"),
        (re.compile(r"javascript\s*:", re.I), "javascript: URI", Severity.HIGH, 0.9,
         "Cross-site scripting attempt using javascript: URI scheme to execute code via links or attributes"),
        (re.compile(r"\bon(load|error|click|mouseover|mouseout|focus|blur|submit|change|input|keydown|keyup|keypress)\s*=", re.I),
         "Event handler injection", Severity.HIGH, 0.85,
         "Cross-site scripting attempt injecting HTML event handler attributes to execute JavaScript"),
        (re.compile(r"data\s*:\s*text/html", re.I), "data: text/html URI", Severity.HIGH, 0.85,
         "Cross-site scripting attempt using data: URI with HTML content type to execute scripts"),
        (re.compile(r"eval\s*\(", re.I), "eval() call", Severity.MEDIUM, 0.75,
         "Potential XSS payload using eval() to dynamically execute JavaScript code"),
        (re.compile(r"document\s*\.\s*cookie", re.I), "document.cookie access", Severity.HIGH, 0.9,
         "Attempt to access session cookies via document.cookie, commonly used for session hijacking"),
        (re.compile(r"document\s*\.\s*write\s*\(", re.I), "document.write() call", Severity.MEDIUM, 0.8,
         "Potential XSS using document.write() to inject content into the page DOM"),
        (re.compile(r"\.innerHTML\s*=", re.I), "innerHTML assignment", Severity.MEDIUM, 0.7,
         "Potential DOM-based XSS through innerHTML assignment that could render untrusted HTML"),
        (re.compile(r"<\s*svg[^>]*\s+on\w+\s*=", re.I), "SVG-based XSS", Severity.HIGH, 0.9,
         "Cross-site scripting attempt using SVG elements with event handlers"),
        (re.compile(r"<\s*img[^>]*\s+onerror\s*=", re.I), "IMG onerror XSS", Severity.HIGH, 0.95,
         "Cross-site scripting using img tag with onerror event handler to execute JavaScript"),
        (re.compile(r"<\s*iframe[^>]*>", re.I), "iframe injection", Severity.MEDIUM, 0.8,
         "Potential XSS or phishing attack via injected iframe element"),
        (re.compile(r"String\s*\.\s*fromCharCode", re.I), "String.fromCharCode obfuscation", Severity.MEDIUM, 0.8,
         "JavaScript obfuscation technique commonly used to hide XSS payloads"),
        (re.compile(r"window\s*\.\s*location\s*[=.]", re.I), "window.location manipulation", Severity.MEDIUM, 0.75,
         "Potential XSS or open redirect attempt by manipulating window.location"),
        (re.compile(r"atob\s*\(", re.I), "atob() Base64 decoding", Severity.MEDIUM, 0.7,
         "Base64 decoding function commonly used to obfuscate XSS payloads"),
        (re.compile(r"expression\s*\(", re.I), "CSS expression() XSS", Severity.MEDIUM, 0.7,
         "CSS expression() function that can execute JavaScript, primarily affects older browsers"),
    ],
)
