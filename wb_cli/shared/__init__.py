"""Cross-cutting helpers shared by the workbench tools."""
