"""Shared pytest fixtures for all tests."""

from __future__ import annotations

import pytest

from email_sandbox.core.models import CompilationPolicy

WELCOME_TEMPLATE = """
const React = require("react");
const { Html, Head, Body, Container, Text, Preview } = require("@react-email/components");

const WelcomeEmail = () => {
  return React.createElement(Html, null,
    React.createElement(Head, null),
    React.createElement(Preview, null, "Welcome aboard"),
    React.createElement(Body, { style: { backgroundColor: "#f6f9fc" } },
      React.createElement(Container, { style: { maxWidth: "600px" } },
        React.createElement(Text, null, "Hello")
      )
    )
  );
};

module.exports.default = WelcomeEmail;
"""

TSX_TEMPLATE = """
import * as React from "react";
import { Html, Body, Container, Heading, Text, Button } from "@react-email/components";

interface Props {
  name?: string;
  items: string[];
}

export default function Receipt({ name = "Ada", items = ["Tea", "Cake"] }: Props) {
  const total: number = items.length;
  return (
    <Html>
      <Body style={{ fontFamily: "Arial, sans-serif" }}>
        <Container>
          <Heading as="h2">Thanks, {name}!</Heading>
          {items.map((item, i) => (
            <Text key={i}>{item}</Text>
          ))}
          <Text>Total items: {total}</Text>
          <Button href="https://example.com/orders">View order</Button>
        </Container>
      </Body>
    </Html>
  );
}
"""


@pytest.fixture
def welcome_template() -> str:
    """Minimal CommonJS template using createElement calls."""
    return WELCOME_TEMPLATE


@pytest.fixture
def tsx_template() -> str:
    """ES module TSX template with JSX, interfaces and annotations."""
    return TSX_TEMPLATE


@pytest.fixture
def tight_policy() -> CompilationPolicy:
    """Policy with small budgets so limit tests run quickly."""
    return CompilationPolicy(
        fuel_budget=5_000,
        max_call_depth=16,
        max_elements=50,
        max_string_length=1_000,
        max_array_length=500,
        max_source_bytes=4_000,
        max_html_bytes=20_000,
        max_console_bytes=200,
        timeout_seconds=2.0,
    )
