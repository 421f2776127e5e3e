"""Builds the conversation sent to the completion endpoint.

The first message is always the system instructions, followed by one
example exchange (a canned diff and a matching answer) so the model sees
what a good reply looks like. The real diff is appended by the caller.
"""

from __future__ import annotations

from autocommit.config import SessionPreferences
from autocommit.i18n import I18n, load_i18n
from autocommit.models import ChatContext, MessageRole

ROLE_INSTRUCTIONS = [
    "You are a software developer and need to create a commit message for a git repository.",
    "Write a clear and concise git commit message that follows the imperative mood and starts with a "
    "specific action verb that clearly conveys the changes made (e.g. 'Implement', 'Refactor', "
    "'Optimize', 'Fix', 'Add', 'Remove').",
    "The first line should provide a brief summary of the changes in present tense, followed by a more "
    "detailed explanation in the second line that includes any necessary context or background "
    "information to help other developers understand the changes made.",
    "Avoid using technical jargon or acronyms that may be unfamiliar to other developers.",
    "Multiple changes should be broken down into separate commits with individual messages.",
]

EMOJI_INSTRUCTIONS = [
    "Use GitMoji convention to preface the commit.",
    "Look up the GitMoji convention to choose an appropriate emoji for the type of changes being made "
    "(e.g. 🐛 for bug fixes, 🎉 for new features, etc.)",
]

DESCRIPTION_INSTRUCTIONS = [
    "You should also provide a detailed explanation in the commit description, including any relevant "
    "context or reasoning behind the change. Specifically, you should:",
    "Include a brief, descriptive summary of the changes made in the commit message",
    "Provide more detailed explanation in the commit description, including any relevant context or "
    "reasoning behind the change.",
    "Start the commit description with a brief summary of the changes made, similar to the summary in "
    "the commit message.",
    "Provide additional context or background information that might be helpful for other developers "
    "to understand why the changes were necessary.",
    "If the changes fix a bug or issue, describe the symptoms of the bug and the steps taken to fix it.",
    "If the changes are related to a feature enhancement, describe what the new feature does and why "
    "it was added.",
    "If there were any particular challenges or obstacles that needed to be overcome to make these "
    "changes, mention them in the commit description.",
    "The commit message should be under 72 characters and focused on a single change or set of "
    "related changes.",
]

NO_DESCRIPTION_INSTRUCTION = "Don't add any descriptions to the commit, only commit message."

TYPE_INSTRUCTIONS = [
    "If the change fixes a bug or issue, the type of change is a 'fix'.",
    "If the change adds a new feature or enhancement, the type of change is a 'feat'",
    "If the change modifies existing functionality, the type of change can be a 'refactor'.",
    "If the change modifies documentation, updates tests, or makes other minor changes, the type of "
    "change is a 'chore'.",
    "Use active voice and start with the type of change, such as fix, feat, refactor, etc.",
]

CLOSING_INSTRUCTIONS = [
    "Exclude anything unnecessary such as the original translation, your entire response will be "
    "passed directly into git commit.",
    "Carefully heed the user's instructions.",
]

REGENERATE_INSTRUCTION = "Suggest a different professional git commit message for the following diff:"

INITIAL_DIFF = """\
diff --git a/main.rs b/main.rs
index 9a99e25..d6ce76e 100644
--- a/main.rs
+++ b/main.rs
@@ -1,7 +1,6 @@
    use reqwest::Client;
    use serde::{Deserialize, Serialize};
-    use std::{collections::HashMap, env, io::{BufRead, BufReader, stdin, stdout}, process, str::FromStr};
-    use structopt::{clap::arg_enum, StructOpt};
+    use std::{error::Error, io::{self, Write}};
#[derive(Debug, Serialize, Deserialize)]
struct ResponseData {
    joke: String,
}
-    let response = client.get("https://api.icndb.com/jokes/random").send().await?;
+    let response_result = client.get("https://api.icndb.com/jokes/random").send().await;
+
+    let response = match response_result {
+        Ok(resp) => resp,
+        Err(e) => {
+            eprintln!("Error sending request to API: {}", e);
+            std::process::exit(1);
+        }
+    };
+
+    let response_body = response.text().await?;
-    let response_data: ResponseData = serde_json::from_str(&response_body)?;
+    let response_body_trimmed = response_body.trim();
+    let response_data: ResponseData = match serde_json::from_str(response_body_trimmed) {
+        Ok(data) => data,
+        Err(e) => {
+            eprintln!("Error parsing API response: {}", e);
+            std::process::exit(1);
+        }
+    };
+
+    writeln!(io::stdout(), "{}", response_data.joke)?;
+    Ok(())
}
"""


class ChatContextBuilder:
    """Assembles the initial chat context from session preferences.

    `build` does no I/O and is deterministic: equal preferences always
    produce identical message sequences.
    """

    def __init__(self, i18n: I18n | None = None) -> None:
        self.i18n = i18n or load_i18n()

    def system_message(self, preferences: SessionPreferences) -> str:
        translation = self.i18n.get(preferences.locale)

        parts = list(ROLE_INSTRUCTIONS)
        if preferences.emoji_enabled:
            parts.extend(EMOJI_INSTRUCTIONS)
        if preferences.description_enabled:
            parts.extend(DESCRIPTION_INSTRUCTIONS)
        else:
            parts.append(NO_DESCRIPTION_INSTRUCTION)
        parts.extend(TYPE_INSTRUCTIONS)
        parts.append(f"Use {translation.language} to answer.")
        parts.append(
            "Be consistent with the formatting and structure of the commit message throughout the commit history."
        )
        parts.append(
            f"Include a 'Signed-off-by: {preferences.author_name} <{preferences.author_email}>' "
            "line indicating the author of the commit."
        )
        parts.extend(CLOSING_INSTRUCTIONS)
        return "\n\n".join(parts)

    def example_answer(self, preferences: SessionPreferences) -> str:
        translation = self.i18n.get(preferences.locale)

        fix_line = translation.commit_fix
        feat_line = translation.commit_feat
        if preferences.emoji_enabled:
            fix_line = f"🐛 {fix_line}"
            feat_line = f"✨ {feat_line}"

        lines = [fix_line, feat_line]
        if preferences.description_enabled:
            lines.append("")
            lines.append(translation.commit_description.rstrip("\n"))
        lines.append("")
        lines.append(f"Signed-off-by: {preferences.author_name} <{preferences.author_email}>")
        return "\n".join(lines)

    def build(self, preferences: SessionPreferences) -> ChatContext:
        """Create a fresh context: system rules plus one example exchange."""
        context = ChatContext()
        context.add_message(MessageRole.SYSTEM, self.system_message(preferences))
        context.add_message(MessageRole.USER, INITIAL_DIFF)
        context.add_message(MessageRole.ASSISTANT, self.example_answer(preferences))
        return context

    def build_for_diff(self, preferences: SessionPreferences, diff: str, regenerate: bool = False) -> ChatContext:
        """Create a fresh context ending with the user's staged diff."""
        context = self.build(preferences)
        content = f"{REGENERATE_INSTRUCTION}\n{diff}" if regenerate else diff
        context.add_message(MessageRole.USER, content)
        return context
